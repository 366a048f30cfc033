"""
Application requirements module.

Per-application checklist items (documents, test scores, fees, interviews) whose
statuses move independently of the application's own lifecycle.
"""
