"""
aitelier: curate rated examples and run provider fine-tuning jobs.
"""

__version__ = "0.1.0"
