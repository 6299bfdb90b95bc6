"""
Event names exchanged with the hub.

Camera nodes emit ``camera_frame`` and ``deploy:error``; the admin node emits
``deploy_start`` / ``deploy_stop``. Everything else is pushed by the hub.
"""

# hub -> admin
CAMERA_LIST = "camera:list"
CAMERA_CONNECTED = "camera:connected"
CAMERA_DISCONNECT = "camera:disconnect"
DEPLOY_SUCCESS = "deploy:success"
DETECTION_RESULT = "detection:result"

# admin -> hub
DEPLOY_START = "deploy_start"
DEPLOY_STOP = "deploy_stop"

# hub -> camera
DEPLOY_ASSIGNED = "deploy:assigned"
DEPLOY_STOPPED = "deploy:stop"

# camera -> hub
CAMERA_FRAME = "camera_frame"
DEPLOY_ERROR = "deploy:error"

# Local lifecycle events fired by the transport session itself
CONNECT = "connect"
DISCONNECT = "disconnect"
RECONNECT_FAILED = "reconnect_failed"
