from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api import gstin, account, location, ledger, outstanding, tax, duty
from app.src.enums import AppID


# ------------------------------------------------------
# Create separate FastAPI apps for each domain
# ------------------------------------------------------
app_functions = FastAPI(title="Functions APP")
app_finance = FastAPI(title="Finance APP")
app_fieldops = FastAPI(title="Field Operations APP")

# Tag each app with its AppID
app_functions.state.id = AppID.FUNCTIONS
app_finance.state.id = AppID.FINANCE
app_fieldops.state.id = AppID.FIELDOPS


# ------------------------------------------------------
# Functions respond with a {success, data, error} envelope
# ------------------------------------------------------
@app_functions.exception_handler(StarletteHTTPException)
async def function_error(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app_functions.exception_handler(RequestValidationError)
async def function_validation_error(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=422,
        content={"success": False, "error": jsonable_encoder(exc.errors())},
    )


# ------------------------------------------------------
# Functions routers
# ------------------------------------------------------
app_functions.include_router(gstin.route_functions)
app_functions.include_router(account.route_functions)
app_functions.include_router(location.route_functions)


# ------------------------------------------------------
# Finance routers
# ------------------------------------------------------
app_finance.include_router(ledger.route_finance)
app_finance.include_router(outstanding.route_finance)
app_finance.include_router(tax.route_finance)


# ------------------------------------------------------
# Field operations routers
# ------------------------------------------------------
app_fieldops.include_router(duty.route_fieldops)
