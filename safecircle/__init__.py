"""safecircle: safety circles, check-ins and panic alerts."""
