"""doist: a Todoist command line client that shows tasks as trees."""

__version__ = "0.1.0"
