from fastapi import FastAPI, Request
from utils.logger_factory import new_logger

from api.slack_oauth import router as slack_oauth_router

app = FastAPI()


@app.middleware("http")
async def log_request(request: Request, call_next):
    log = new_logger("log_request")
    # Query strings carry OAuth codes and state, so only the path is logged
    log.info(f"INCOMING REQUEST: {request.method} {request.url.path}")
    response = await call_next(request)
    log.info(f"RESPONSE: {request.method} {request.url.path} -> {response.status_code}")
    return response


@app.get("/")
def root():
    return {"message": "Slack OAuth install service deployed. Start an install at /slack/install."}


app.include_router(slack_oauth_router, prefix="/slack")
