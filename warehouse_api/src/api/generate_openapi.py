import json
import os

from src.api.main import app, websocket_info


# PUBLIC_INTERFACE
def write_openapi(output_dir: str) -> str:
    """Write the REST schema plus the websocket endpoint docs to <output_dir>/openapi.json."""
    schema = app.openapi()
    # websocket routes are not part of OpenAPI
    schema["x-websocket-endpoints"] = websocket_info()["endpoints"]

    os.makedirs(output_dir, exist_ok=True)
    output_path = os.path.join(output_dir, "openapi.json")
    with open(output_path, "w") as f:
        json.dump(schema, f, indent=2)
    return output_path


if __name__ == "__main__":
    print(write_openapi(os.environ.get("OPENAPI_OUTPUT_DIR", "interfaces")))
