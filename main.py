import os

import uvicorn


def run() -> None:
    host = os.environ.get("HOST", "0.0.0.0")
    port = int(os.environ.get("PORT", "8000"))
    # log configuration is owned by the app's lifespan
    uvicorn.run("bello.main:app", host=host, port=port, log_config=None)


if __name__ == "__main__":
    run()
