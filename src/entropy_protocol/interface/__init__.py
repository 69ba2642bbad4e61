"""Console rendering for the command-line front end."""
