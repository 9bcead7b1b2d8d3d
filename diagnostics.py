"""
Logging setup and environment diagnostics shared by the editor and the CLI.
"""

import logging
import os
import sys
from datetime import datetime
from pathlib import Path

import cv2
import numpy as np
import PIL

from version import __version__


def log_file_name():
    """Name of today's error log file"""
    return f"photo-editor-error-{datetime.now().strftime('%Y%m%d')}.log"


def setup_error_logging(app_name="photo-editor", app_dir=None):
    """
    Route log records to today's error log and stderr.

    The log lives next to the script (or the frozen executable) unless
    app_dir is given. Each run starts with a header line naming the tool
    and its version, since both entry points share one log file.
    """
    if app_dir is None:
        frozen = getattr(sys, 'frozen', False)
        app_dir = Path(sys.executable).parent if frozen else Path(__file__).parent

    log_file = Path(app_dir) / log_file_name()

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(log_file, encoding='utf-8'),
            logging.StreamHandler(sys.stderr)
        ]
    )

    logger = logging.getLogger(app_name)
    logger.info(f"{app_name} {__version__} logging to {log_file}")
    return logger


def log_opencv_diagnostics(logger):
    """
    Log OpenCV, Pillow and numpy versions plus platform information.
    Helps diagnose image decoding and DLL loading issues on other machines.
    """
    logger.info("=" * 60)
    logger.info("Imaging Diagnostic Information")
    logger.info("=" * 60)

    logger.info(f"OpenCV Version: {cv2.__version__}")
    logger.info(f"Pillow Version: {PIL.__version__}")
    logger.info(f"numpy Version: {np.__version__}")

    try:
        opencv_path = cv2.__file__
        logger.info(f"OpenCV Module Path: {opencv_path}")
        logger.info(f"OpenCV Module Exists: {os.path.exists(opencv_path)}")
    except Exception as e:
        logger.error(f"Could not determine OpenCV path: {e}")

    # Build information, key sections only
    try:
        build_info = cv2.getBuildInformation()
        for line in build_info.split('\n'):
            if any(keyword in line.lower() for keyword in ['version', 'platform', 'compiler', 'python']):
                logger.info(f"  {line.strip()}")
    except Exception as e:
        logger.error(f"Could not get build information: {e}")

    logger.info(f"Python Version: {sys.version}")
    logger.info(f"Platform: {sys.platform}")
    logger.info(f"Frozen (PyInstaller): {getattr(sys, 'frozen', False)}")
    if getattr(sys, 'frozen', False):
        logger.info(f"Executable Path: {sys.executable}")
        logger.info(f"MEIPASS: {getattr(sys, '_MEIPASS', 'Not set')}")

    logger.info("=" * 60)
