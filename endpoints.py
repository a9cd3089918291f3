# Route table for the media API; update if the backend routes change.


BASE_URL = "http://localhost:8080/api"

AUTH = {
    "login": {
        "method": "POST",
        "path": "/auth/login",
    },
    "register": {
        "method": "POST",
        "path": "/auth/register",
    },
    "verify": {
        "method": "GET",
        "path": "/auth/verify",
    },
}

FILES = {
    "list": {
        "method": "GET",
        "path": "/files",
    },
    "upload": {
        "method": "POST",
        "path": "/files/upload",
    },
    "delete": {
        "method": "DELETE",
        "path": "/files/delete",
    },
    "view_count": {
        "method": "PATCH",
        "path": "/files/update_view_count",
    },
}

SHARE = {
    "by_email": {
        "method": "POST",
        "path": "/files/share",
    },
    "generate_link": {
        "method": "POST",
        "path": "/files/share/link",
    },
    "shared_file": {
        "method": "GET",
        "path": "/files/shared/{token}",
    },
}
