"""
Camera node package.

Runs on each remote capture machine:
- keeps one transport session to the hub
- waits for the admin's deploy command
- captures, downscales, JPEG-encodes and transmits frames while deployed
- releases the capture device on stop, disconnect or shutdown
"""
