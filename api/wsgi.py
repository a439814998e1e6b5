"""
WSGI entry point for serverless and container deployments.

Configuration comes from the environment; see `app.load_config`.
"""

import os
from app import create_app

app = create_app()

if __name__ == "__main__":
    app.run(debug=False, host="0.0.0.0", port=int(os.environ.get("PORT", 5000)))
