from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from filelair.config import CORS_ORIGINS
from filelair.errors import ErrorCode, FileLairError
from filelair.logging_config import configure_logging
from filelair.routers.files import router as files_router

configure_logging()

app = FastAPI(title="FileLair")
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)
app.include_router(files_router)


@app.exception_handler(FileLairError)
async def filelair_error_handler(request: Request, exc: FileLairError):
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
        headers={"Cache-Control": "no-store"},
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    error = FileLairError(ErrorCode.VALIDATION_ERROR, "Invalid request")
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


@app.get("/healthz")
def healthz():
    return {"ok": True}
