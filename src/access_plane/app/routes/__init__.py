"""HTTP route factories for the access plane."""
