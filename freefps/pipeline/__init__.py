"""
This package contains the batch pipeline of Free FPS.

The pipeline orchestrates a whole conversion run: it discovers the files,
selects an encoder once, runs the job executor over the files one at a time
and aggregates their outcomes into a summary.
"""
