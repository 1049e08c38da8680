# Plain data types shared by the controller, drivers and radio.
