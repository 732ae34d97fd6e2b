"""EarStaff: interactive staff note editing for ear-training dictation."""

__version__ = "0.1.0"
