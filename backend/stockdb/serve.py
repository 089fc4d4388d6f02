"""
Run the stock ledger API under uvicorn.

    python -m stockdb.serve

Configuration comes from the environment: HOST, PORT, RELOAD, LOG_LEVEL,
FORWARDED_ALLOW_IPS and the optional SSL_* file paths.
"""

import os
from typing import Dict, Optional

import uvicorn

_TRUTHY = {"1", "true", "yes", "on"}


def _ssl_options() -> Dict[str, Optional[str]]:
    env_to_option = {
        "SSL_CERTFILE": "ssl_certfile",
        "SSL_KEYFILE": "ssl_keyfile",
        "SSL_CA_CERTS": "ssl_ca_certs",
        "SSL_KEYFILE_PASSWORD": "ssl_keyfile_password",
    }
    return {option: os.getenv(env) for env, option in env_to_option.items() if os.getenv(env)}


def main() -> None:
    uvicorn.run(
        "stockdb.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        reload=os.getenv("RELOAD", "false").lower() in _TRUTHY,
        log_level=os.getenv("LOG_LEVEL", "info"),
        proxy_headers=True,
        forwarded_allow_ips=os.getenv("FORWARDED_ALLOW_IPS", "*"),
        **_ssl_options(),
    )


if __name__ == "__main__":
    main()
