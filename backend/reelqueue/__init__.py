"""
ReelQueue — batch video transcoding orchestration.

Compiles recipes into ordered task lists, runs them one at a time against an
external encoder, and derives live progress metrics from the task list.
"""

__version__ = "0.1.0"
