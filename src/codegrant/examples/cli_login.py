"""
Log in to an OAuth2 provider from the command line.

Prints the authorization URL, then asks you to paste the URL your browser was
redirected to. Configure the client with these environment variables (a .env
file works too):

    OAUTH_CLIENT_ID, OAUTH_CLIENT_SECRET (optional),
    OAUTH_AUTHORIZATION_ENDPOINT, OAUTH_TOKEN_ENDPOINT,
    OAUTH_REDIRECT_URI, OAUTH_SCOPES (space separated, optional)
"""

import asyncio
import logging
import os
from urllib.parse import parse_qsl, urlsplit

from dotenv import load_dotenv

from codegrant.grant import AuthorizationCodeGrant
from codegrant.models.config import GrantConfig
from codegrant.models.errors import AuthorizationError
from codegrant.services.security import generate_state


async def main():
    config = GrantConfig(
        client_id=os.getenv("OAUTH_CLIENT_ID", ""),
        client_secret=os.getenv("OAUTH_CLIENT_SECRET") or None,
        authorization_endpoint=os.getenv("OAUTH_AUTHORIZATION_ENDPOINT", ""),
        token_endpoint=os.getenv("OAUTH_TOKEN_ENDPOINT", ""),
    )
    redirect_uri = os.getenv("OAUTH_REDIRECT_URI", "http://localhost:8080/callback")
    scopes = os.getenv("OAUTH_SCOPES", "").split()

    grant = AuthorizationCodeGrant.from_config(config)
    try:
        auth_url = grant.get_authorization_url(
            redirect_uri, scopes=scopes, state=generate_state()
        )
        print(f"Visit this URL to authorize:\n\n  {auth_url}\n")
        callback_url = input("Paste the URL you were redirected to: ").strip()
        params = dict(parse_qsl(urlsplit(callback_url).query))

        try:
            client = await grant.handle_authorization_response(params)
        except AuthorizationError as e:
            print(f"Authorization failed: {e}")
            return

        logging.info(f"Granted scopes: {client.credentials.scopes}")
        print(client.credentials.to_json())
    finally:
        await grant.close()


if __name__ == "__main__":
    load_dotenv()
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())
