"""Queryable, self-refreshing view over Claude Code session transcripts."""
