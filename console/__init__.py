"""Console front end for the hospital management system."""
