"""
Observability for the Tower harness.

Structured logging plus the observer port the service layer notifies
after each verdict. The engine itself never logs.
"""
