"""Generate OpenAPI schema from the FastAPI app."""

import json

from creditledger.main import app

if __name__ == "__main__":
    print(json.dumps(app.openapi()))
