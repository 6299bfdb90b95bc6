"""
Admin node package.

The command-and-control side:
- tracks every connected camera and the latest detection result per camera
- derives aggregate statistics
- issues deploy/stop commands
- renders one overlay tile per camera
"""
