"""
Applications module.

- Application lifecycle: draft -> in_progress -> submitted (terminal)
- Ordered sections with completion flags drive the progress percentage
- Submission is refused while any section is incomplete
"""
