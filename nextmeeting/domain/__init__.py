"""Meeting assembly, filtering, link extraction and the refresh monitor."""
