from starlette.responses import Response


def write_response(response: Response, status_code: int, body: str = "", media_type: str = "text/html; charset=utf-8") -> Response:
    """Replace the status and body of an already constructed response.

    Starlette fixes content-length when a response is built, so hooks that
    write their own page go through here instead of assigning ``body``.
    """
    encoded = body.encode("utf-8")
    response.status_code = status_code
    response.body = encoded
    response.headers["content-length"] = str(len(encoded))
    if encoded:
        response.headers["content-type"] = media_type
    return response


def redirect_response(response: Response, location: str, status_code: int = 302) -> Response:
    response.headers["location"] = location
    return write_response(response, status_code)
