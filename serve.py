"""Run the SoVest API with uvicorn."""
import os

import uvicorn

from sovest.api.app import create_app

app = create_app(use_lifespan=True)


if __name__ == "__main__":
    uvicorn.run(
        app,
        host=os.environ.get("SOVEST_HOST", "0.0.0.0"),
        port=int(os.environ.get("SOVEST_PORT", "8000")),
    )
