"""Pattern learning over completed sessions."""
