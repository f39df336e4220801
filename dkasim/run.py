"""
DKA Simulator Backend Runner
"""

import uvicorn
from dkasim.core.config import Config


def main():
    """Run the DKA simulator backend server."""
    uvicorn.run(
        "dkasim.api.main:app",
        host=Config.HOST,
        port=Config.PORT,
        reload=Config.DEBUG,
        log_level=Config.LOG_LEVEL.lower()
    )


if __name__ == "__main__":
    main()
