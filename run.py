#!/usr/bin/env python3
"""
Run script for the Identity API.
This script launches the FastAPI server with the auth router mounted.
"""
import uvicorn
import sys
import traceback

if __name__ == "__main__":
    try:
        # Print information about the server
        print("Starting Identity API server...")
        print("Access the API at http://localhost:8000")
        print("API documentation at http://localhost:8000/docs")

        # Run the server
        uvicorn.run(
            "identity.main:create_app",
            factory=True,
            host="0.0.0.0",
            port=8000,
            reload=True,
            log_level="info"
        )
    except Exception as e:
        print(f"Error starting server: {e}")
        traceback.print_exc()
        sys.exit(1)
