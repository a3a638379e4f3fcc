"""voxrelay command line interface."""
