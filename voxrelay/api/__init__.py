"""voxrelay HTTP API."""
