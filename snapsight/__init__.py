"""SnapSight: camera still capture, upload client and vision analysis proxy."""
