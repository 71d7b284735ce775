"""
Case Export Service Entry Point

Run with: uvicorn case_export.service:app --port 8081
Or: python main.py
"""

import os

from case_export.service import app

if __name__ == "__main__":
    import uvicorn
    port = int(os.environ.get("CASE_EXPORT_PORT", 8081))
    uvicorn.run(app, host="0.0.0.0", port=port)
