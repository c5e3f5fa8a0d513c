"""Demo games: pure transition phases, termination rules and codecs for the host."""
