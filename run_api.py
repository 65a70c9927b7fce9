#!/usr/bin/env python3
"""
Run the Severity Escalation API.
Set OPENAI_API_KEY in environment (or .env) to merge LLM severity into the keyword result;
set DISPATCH_URL to deliver alerts over HTTP instead of the in-memory dispatcher.
"""
import os

from dotenv import load_dotenv
import uvicorn

load_dotenv()

if __name__ == "__main__":
    port = int(os.environ.get("PORT", 8000))
    uvicorn.run(
        "api.main:app",
        host="0.0.0.0",
        port=port,
        reload=os.environ.get("RELOAD", "0") == "1",
    )
