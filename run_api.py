import logging
import os
import sys

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
if BASE_DIR not in sys.path:
    sys.path.insert(0, BASE_DIR)

import uvicorn
from prizewheel.config import API_HOST, API_PORT, LOG_LEVEL
from prizewheel.api.api_app import app

if __name__ == "__main__":
    logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s | %(levelname)s | %(name)s | %(message)s")
    uvicorn.run(app, host=API_HOST, port=API_PORT)
