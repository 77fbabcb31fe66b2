import os

import uvicorn

from shotspot.api.app import create_app
from shotspot.config import Config

app = create_app()

def main():
    """Main entry point"""
    Config.validate()
    uvicorn.run(
        "shotspot.main:app",
        host=os.getenv('HOST', '0.0.0.0'),
        port=int(os.getenv('PORT', 3001)),
        log_level="debug" if Config.DEBUG else "info"
    )

if __name__ == "__main__":
    main()
