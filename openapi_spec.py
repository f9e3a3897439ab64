"""
openapi_spec.py - ScoreMate OpenAPI 3.0 specification builder.

Returns a Python dict (compatible with ``json.dumps``) that describes every
REST endpoint exposed by ``scoremate_web.py``.

Usage (from scoremate_web.py)::

    from openapi_spec import build_spec
    spec = build_spec(server_url="http://localhost:5000")
"""

from typing import Any, Dict


def _ref(name: str) -> Dict[str, str]:
    return {"$ref": f"#/components/schemas/{name}"}


def _resp(description: str, schema: Dict = None) -> Dict:
    content: Dict[str, Any] = {}
    if schema:
        content = {"application/json": {"schema": schema}}
    r: Dict[str, Any] = {"description": description}
    if content:
        r["content"] = content
    return r


def _json_resp(description: str, schema: Dict = None) -> Dict:
    if schema is None:
        schema = {"type": "object"}
    return _resp(description, schema)


def _success() -> Dict:
    return _json_resp("Success", _ref("Success"))


def _error(description: str = "Error") -> Dict:
    return _json_resp(description, _ref("Error"))


def _json_body(schema: Dict) -> Dict:
    return {"required": True, "content": {"application/json": {"schema": schema}}}


def _upload_body(description: str) -> Dict:
    return {
        "required": True,
        "content": {"multipart/form-data": {"schema": {
            "type": "object",
            "required": ["file"],
            "properties": {"file": {"type": "string", "format": "binary",
                                    "description": description}},
        }}},
    }


_MATCH_ID = {"name": "match_id", "in": "path", "required": True, "schema": {"type": "string"}}
_CREDENTIALS = {
    "type": "object",
    "required": ["username", "password"],
    "properties": {
        "username": {"type": "string", "minLength": 3},
        "password": {"type": "string", "format": "password", "minLength": 6},
    },
}
_SCORE_ENTRY = {
    "type": "object",
    "properties": {
        "player1Score": {"type": "integer", "minimum": 0, "maximum": 147},
        "player2Score": {"type": "integer", "minimum": 0, "maximum": 147},
        "tag": {"type": "string", "enum": ["star", "dot"], "nullable": True},
    },
}


def build_spec(server_url: str = "/") -> Dict[str, Any]:
    """Return the full OpenAPI 3.0 specification dict."""

    spec: Dict[str, Any] = {
        "openapi": "3.0.3",
        "info": {
            "title": "ScoreMate: Snooker Score Tracker API",
            "version": "1.0.0",
            "description": (
                "REST API for ScoreMate: record snooker matches frame by frame, "
                "import finished matches from photos of handwritten scoreboards, "
                "export every frame as CSV and view win, average and activity "
                "statistics.\n\n"
                "All match, statistics, export and import endpoints require an "
                "active session (log in via `POST /api/auth/login` first) and only "
                "ever see the logged-in user's own matches."
            ),
            "license": {"name": "MIT"},
        },
        "servers": [{"url": server_url, "description": "ScoreMate server"}],
        "tags": [
            {"name": "auth",    "description": "Accounts and sessions"},
            {"name": "matches", "description": "Matches and frames"},
            {"name": "stats",   "description": "Aggregated statistics"},
            {"name": "export",  "description": "CSV export"},
            {"name": "import",  "description": "Scoreboard photo import"},
            {"name": "docs",    "description": "Health and API documentation"},
        ],
        "components": {
            "schemas": {
                "Error": {
                    "type": "object",
                    "properties": {"error": {"type": "string"},
                                   "detail": {"type": "string"}},
                    "required": ["error"],
                },
                "Success": {
                    "type": "object",
                    "properties": {"success": {"type": "boolean", "example": True}},
                },
                "Frame": {
                    "type": "object",
                    "properties": {
                        "player1Score": {"type": "integer", "minimum": 0, "example": 72},
                        "player2Score": {"type": "integer", "minimum": 0, "example": 14},
                        "tag":          {"type": "string", "enum": ["star", "dot"],
                                         "nullable": True},
                    },
                },
                "Match": {
                    "type": "object",
                    "properties": {
                        "id":                     {"type": "string"},
                        "player1Name":            {"type": "string", "example": "Alice"},
                        "player2Name":            {"type": "string", "example": "Bob"},
                        "frames":                 {"type": "array", "items": _ref("Frame")},
                        "player1TotalFoulPoints": {"type": "integer", "minimum": 0},
                        "player2TotalFoulPoints": {"type": "integer", "minimum": 0},
                        "status":                 {"type": "string",
                                                   "enum": ["playing", "ended"]},
                        "createdAt":              {"type": "string", "format": "date-time"},
                        "scoreboardImage":        {"type": "string", "nullable": True,
                                                   "description": "data: URI of the photo"},
                    },
                },
                "ValidationResult": {
                    "type": "object",
                    "properties": {
                        "isValid":        {"type": "boolean"},
                        "warningMessage": {"type": "string"},
                    },
                    "required": ["isValid"],
                },
                "ImportReport": {
                    "type": "object",
                    "properties": {
                        "created": {"type": "integer"},
                        "total":   {"type": "integer"},
                        "failed":  {"type": "array", "items": {
                            "type": "object",
                            "properties": {"file": {"type": "string"},
                                           "error": {"type": "string"}},
                        }},
                    },
                },
            },
            "securitySchemes": {
                "sessionCookie": {
                    "type": "apiKey",
                    "in": "cookie",
                    "name": "session",
                    "description": "Session cookie obtained from POST /api/auth/login",
                }
            },
        },
        "security": [{"sessionCookie": []}],
        "paths": _build_paths(),
    }
    return spec


def _build_paths() -> Dict[str, Any]:
    paths: Dict[str, Any] = {}

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------
    paths["/api/auth/register"] = {
        "post": {
            "tags": ["auth"],
            "summary": "Register a new user",
            "security": [],
            "requestBody": _json_body(_CREDENTIALS),
            "responses": {
                "201": _json_resp("User created"),
                "400": _error("Validation error"),
                "409": _error("Username already taken"),
            },
        }
    }
    paths["/api/auth/login"] = {
        "post": {
            "tags": ["auth"],
            "summary": "Log in",
            "description": "Authenticate with username + password. Sets a session cookie.",
            "security": [],
            "requestBody": _json_body(_CREDENTIALS),
            "responses": {
                "200": _json_resp("Logged in successfully",
                                  {"type": "object",
                                   "properties": {"message": {"type": "string"},
                                                  "username": {"type": "string"}}}),
                "401": _error("Invalid credentials"),
            },
        }
    }
    paths["/api/auth/logout"] = {
        "post": {
            "tags": ["auth"],
            "summary": "Log out",
            "responses": {"200": _success()},
        }
    }
    paths["/api/auth/current"] = {
        "get": {
            "tags": ["auth"],
            "summary": "Get current user",
            "responses": {
                "200": _json_resp("Current user",
                                  {"type": "object",
                                   "properties": {"username": {"type": "string"}}}),
                "401": _error("Not authenticated"),
            },
        }
    }
    paths["/api/auth/change-password"] = {
        "post": {
            "tags": ["auth"],
            "summary": "Change the current user's password",
            "requestBody": _json_body({
                "type": "object",
                "required": ["current_password", "new_password"],
                "properties": {
                    "current_password": {"type": "string", "format": "password"},
                    "new_password":     {"type": "string", "format": "password"},
                },
            }),
            "responses": {"200": _json_resp("Password updated"), "400": _error()},
        }
    }

    # ------------------------------------------------------------------
    # Matches
    # ------------------------------------------------------------------
    paths["/api/matches"] = {
        "get": {
            "tags": ["matches"],
            "summary": "List matches",
            "description": "Newest first. Scoreboard images are omitted.",
            "responses": {"200": _json_resp("Matches", {
                "type": "object",
                "properties": {"matches": {"type": "array", "items": _ref("Match")}},
            })},
        },
        "post": {
            "tags": ["matches"],
            "summary": "Start a match",
            "requestBody": _json_body({
                "type": "object",
                "required": ["player1Name", "player2Name"],
                "properties": {
                    "player1Name": {"type": "string"},
                    "player2Name": {"type": "string"},
                    "createdAt":   {"type": "string", "format": "date-time"},
                },
            }),
            "responses": {"201": _json_resp("Created", _ref("Match")), "400": _error()},
        },
    }
    paths["/api/matches/{match_id}"] = {
        "parameters": [_MATCH_ID],
        "get": {
            "tags": ["matches"],
            "summary": "Get a match including its scoreboard image",
            "responses": {"200": _json_resp("Match", _ref("Match")),
                          "404": _error("Not found")},
        },
        "put": {
            "tags": ["matches"],
            "summary": "Overwrite a match",
            "description": "A missing or null scoreboardImage keeps the stored image.",
            "requestBody": _json_body(_ref("Match")),
            "responses": {"200": _json_resp("Updated", _ref("Match")),
                          "400": _error(), "404": _error("Not found")},
        },
        "delete": {
            "tags": ["matches"],
            "summary": "Delete a match",
            "responses": {"200": _success()},
        },
    }
    paths["/api/matches/{match_id}/frames"] = {
        "parameters": [_MATCH_ID],
        "post": {
            "tags": ["matches"],
            "summary": "Append a frame",
            "requestBody": _json_body(_SCORE_ENTRY),
            "responses": {"201": _json_resp("Updated match", _ref("Match")),
                          "404": _error("Not found"),
                          "422": _json_resp("Score rejected", _ref("ValidationResult"))},
        },
    }
    paths["/api/matches/{match_id}/frames/{frame_number}"] = {
        "parameters": [_MATCH_ID, {"name": "frame_number", "in": "path", "required": True,
                                   "schema": {"type": "integer", "minimum": 1}}],
        "put": {
            "tags": ["matches"],
            "summary": "Edit a frame",
            "requestBody": _json_body(_SCORE_ENTRY),
            "responses": {"200": _json_resp("Updated match", _ref("Match")),
                          "400": _error("No such frame"),
                          "404": _error("Not found"),
                          "422": _json_resp("Score rejected", _ref("ValidationResult"))},
        },
    }
    paths["/api/matches/{match_id}/end"] = {
        "parameters": [_MATCH_ID],
        "post": {
            "tags": ["matches"],
            "summary": "End a match",
            "responses": {"200": _json_resp("Ended match", _ref("Match")),
                          "404": _error("Not found")},
        },
    }
    paths["/api/matches/{match_id}/fouls"] = {
        "parameters": [_MATCH_ID],
        "put": {
            "tags": ["matches"],
            "summary": "Set both players' foul point totals",
            "requestBody": _json_body({
                "type": "object",
                "properties": {
                    "player1TotalFoulPoints": {"type": "integer", "minimum": 0},
                    "player2TotalFoulPoints": {"type": "integer", "minimum": 0},
                },
            }),
            "responses": {"200": _json_resp("Updated match", _ref("Match")),
                          "400": _error(), "404": _error("Not found")},
        },
    }
    paths["/api/validate-score"] = {
        "post": {
            "tags": ["matches"],
            "summary": "Check a frame score without saving",
            "requestBody": _json_body(_SCORE_ENTRY),
            "responses": {"200": _json_resp("Result", _ref("ValidationResult"))},
        },
    }

    # ------------------------------------------------------------------
    # Stats / Export
    # ------------------------------------------------------------------
    paths["/api/stats"] = {
        "get": {
            "tags": ["stats"],
            "summary": "Wins, averages, best plays and activity",
            "parameters": [{"name": "period", "in": "query",
                            "schema": {"type": "string", "enum": ["month", "year"],
                                       "default": "month"}}],
            "responses": {"200": _json_resp("Statistics"), "400": _error("Unknown period")},
        },
    }
    paths["/api/export/csv"] = {
        "get": {
            "tags": ["export"],
            "summary": "Download every frame as CSV",
            "responses": {"200": {"description": "CSV file",
                                  "content": {"text/csv": {"schema": {"type": "string"}}}}},
        },
    }
    paths["/api/frames"] = {
        "get": {
            "tags": ["export"],
            "summary": "Flat table of every recorded frame",
            "responses": {"200": _json_resp("Frame rows")},
        },
    }

    # ------------------------------------------------------------------
    # Import
    # ------------------------------------------------------------------
    paths["/api/import/image"] = {
        "post": {
            "tags": ["import"],
            "summary": "Create an ended match from a scoreboard photo",
            "requestBody": _upload_body("jpg, jpeg, png, gif, webp, heic or heif image"),
            "responses": {
                "201": _json_resp("Created match", _ref("Match")),
                "400": _error("Missing or unsupported file"),
                "502": _error("Translation failed"),
                "503": _error("Image extraction is not configured"),
            },
        },
    }
    paths["/api/import/archive"] = {
        "post": {
            "tags": ["import"],
            "summary": "Create ended matches from every photo in a ZIP archive",
            "requestBody": _upload_body(".zip archive of scoreboard photos"),
            "responses": {
                "200": _json_resp("Import report", _ref("ImportReport")),
                "400": _error("Not a ZIP archive"),
                "503": _error("Image extraction is not configured"),
            },
        },
    }

    # ------------------------------------------------------------------
    # Docs
    # ------------------------------------------------------------------
    paths["/api/health"] = {
        "get": {
            "tags": ["docs"],
            "summary": "Service health",
            "security": [],
            "responses": {"200": _json_resp("Healthy"), "503": _json_resp("Degraded")},
        },
    }
    paths["/api/openapi.json"] = {
        "get": {
            "tags": ["docs"],
            "summary": "This document",
            "security": [],
            "responses": {"200": _json_resp("OpenAPI 3.0 document")},
        },
    }
    return paths
