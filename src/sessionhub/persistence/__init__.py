"""Session blobs, checkpoints, change detection and the auto-save loop.

Blobs are JSON files under a data directory::

    <data_dir>/sessions/<session_id>.json
    <data_dir>/checkpoints/<session_id>/<checkpoint_id>.json
"""
