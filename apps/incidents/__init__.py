"""
Incident tracking: incidents, comments and the status workflow.
"""
