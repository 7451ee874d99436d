"""Worker process that claims performance jobs over the agent API and runs them with JMeter.

Start it with `manage.py run_agent`; it needs no database of its own.
"""
