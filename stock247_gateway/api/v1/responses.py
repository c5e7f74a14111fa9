"""Error response helpers keeping the {success, message} envelope"""

from fastapi.responses import JSONResponse


def failure(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message})
