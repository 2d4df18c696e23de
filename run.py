"""
Simple launcher for the Condo Billing System.
"""

import uvicorn

if __name__ == "__main__":
    print("=" * 50)
    print("Condo Billing System")
    print("=" * 50)
    print("\nApplication available at: http://localhost:8000")
    print("API documentation: http://localhost:8000/docs")
    print("\nPress Ctrl+C to stop the server\n")
    print("-" * 50)

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)
