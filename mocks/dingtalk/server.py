"""
Mock DingTalk server providing the user token, current-user profile and
pinyin transliteration endpoints.
"""

import secrets
from typing import Any, Dict, Optional

from fastapi import FastAPI, Header, HTTPException, Query
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel

from shared.logging import get_logger


class UserAccessTokenRequest(BaseModel):
    """Body of POST /v1.0/oauth2/userAccessToken."""
    clientId: str
    clientSecret: str
    authCode: str
    grantType: str = "authorization_code"


class MockDingTalkServer:
    """Mock DingTalk server implementation."""

    def __init__(self, port: int = 8090):
        self.port = port
        self.logger = get_logger("mock.dingtalk")
        self.app = FastAPI(title="Mock DingTalk", version="1.0.0")

        self.client_id = "dingtalk-client"
        self.client_secret = "dingtalk-secret"

        # Authorization codes the mock accepts, keyed to a user
        self.auth_codes = {
            "code-zhangsan": "zhangsan",
            "code-lisi": "lisi",
            "code-anonymous": "anonymous",
        }

        self.users: Dict[str, Dict[str, Any]] = {
            "zhangsan": {
                "nick": "张三",
                "unionId": "UNION-ZHANGSAN",
                "openId": "OPEN-ZHANGSAN",
                "mobile": "13800000000",
                "stateCode": "86",
            },
            "lisi": {
                "nick": "李四",
                "unionId": "UNION-LISI",
                "openId": "OPEN-LISI",
                "email": "lisi@corp.example",
                "mobile": "13900000000",
                "stateCode": "86",
            },
            "anonymous": {
                "nick": "",
                "unionId": "UNION-ANON",
                "openId": "OPEN-ANON",
            },
        }

        self.pinyin = {
            "张三": "zhangsan",
            "李四": "lisi",
        }

        # Issued access token -> user
        self.tokens: Dict[str, str] = {}

        self._setup_routes()

    def _setup_routes(self):
        """Set up mock DingTalk routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "mock-dingtalk",
                "message": "Mock DingTalk server for the Access Layer federation service",
                "version": "1.0.0",
            }

        @self.app.post("/v1.0/oauth2/userAccessToken")
        async def user_access_token(body: UserAccessTokenRequest):
            """Exchange an authorization code for a user access token."""
            if body.clientId != self.client_id or body.clientSecret != self.client_secret:
                return JSONResponse(
                    status_code=400,
                    content={"code": "invalidClient", "message": "client credentials are invalid"},
                )

            user_id = self.auth_codes.get(body.authCode)
            if user_id is None:
                return JSONResponse(
                    status_code=400,
                    content={"code": "invalidAuthCode", "message": "authCode is invalid or expired"},
                )

            access_token = secrets.token_hex(16)
            self.tokens[access_token] = user_id
            self.logger.info("Issued mock access token", user_id=user_id)

            return {
                "accessToken": access_token,
                "refreshToken": secrets.token_hex(16),
                "expireIn": 7200,
                "corpId": "ding-mock-corp",
            }

        @self.app.get("/v1.0/contact/users/me")
        async def current_user(
            access_token: Optional[str] = Header(None, alias="x-acs-dingtalk-access-token"),
        ):
            """Return the profile of the token owner."""
            user_id = self.tokens.get(access_token or "")
            if user_id is None:
                raise HTTPException(status_code=401, detail="Invalid access token")
            return self.users[user_id]

        @self.app.get("/topinyin", response_class=PlainTextResponse)
        async def to_pinyin(text: str = Query("")):
            """Transliterate a display name."""
            return self.pinyin.get(text, text)


def create_app():
    """Create mock DingTalk application."""
    server = MockDingTalkServer()
    return server.app


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(create_app(), host="0.0.0.0", port=8090)
