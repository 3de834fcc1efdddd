"""
bird-lg web settings
Environment switches for the HTTP layer; everything else lives in bird_lg.utils.config
"""

import os

BIRDLG_WEB_LOG_LEVEL = os.getenv('BIRDLG_WEB_LOG_LEVEL', 'INFO').upper()
BIRDLG_ENABLE_DOCS = os.getenv('BIRDLG_ENABLE_DOCS', 'false').lower() == 'true'

# Paths that bypass the admission check on the frontend
FRONTEND_PUBLIC_PATHS = ('/healthz',)
