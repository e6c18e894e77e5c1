"""Result rendering: JSON envelopes for agents, rich output for people."""
