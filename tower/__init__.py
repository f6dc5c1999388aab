"""
Tower: verdict evaluation harness for autonomous agents.

Renders ACCEPT / CHANGE_PLAN / STOP on each artefact an agent produces
and judges whole-run telemetry against its success criteria.
"""

__version__ = "0.1.0"
