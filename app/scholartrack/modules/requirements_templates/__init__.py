"""
Requirements templates module.

Reusable sets of requirement definitions. Applying a template copies its definitions
onto an application; later template edits never touch the copies.
"""
