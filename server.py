# -*- coding: utf-8 -*-
# Entry point for Render / local runs: python server.py
import os

from dotenv import load_dotenv

load_dotenv()

from luckydraw.main import app  # noqa: E402

if __name__ == "__main__":
    import uvicorn
    port = int(os.environ.get("PORT", 8000))
    uvicorn.run("server:app", host="0.0.0.0", port=port)
