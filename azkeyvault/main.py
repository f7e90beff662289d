import logging
from functools import lru_cache

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from azkeyvault.clients.key_vault import KeyVault, key_vault
from azkeyvault.core.errors import ServiceError

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(title="Key Vault browser")


@lru_cache
def get_vault() -> KeyVault:
    return key_vault()


@app.exception_handler(ServiceError)
async def service_error(request: Request, exc: ServiceError):
    logger.error(f"Vault call for {request.url.path} failed: {exc}")
    return JSONResponse(status_code=exc.status_code, content={"code": exc.code, "message": exc.message})


# ---------- SECRETS ----------
@app.get("/secrets")
def list_secrets(vault: KeyVault = Depends(get_vault)):
    return vault.secrets.list()


@app.get("/secrets/{name}/versions")
def secret_versions(name: str, vault: KeyVault = Depends(get_vault)):
    # listed from the versions endpoint so values never leave the vault
    return [v.model_dump(mode="json") for v in vault.secrets.list_versions(name)]


# ---------- KEYS ----------
@app.get("/keys")
def list_keys(vault: KeyVault = Depends(get_vault)):
    return vault.keys.list()


# ---------- CERTIFICATES ----------
@app.get("/certificates")
def list_certificates(vault: KeyVault = Depends(get_vault)):
    return vault.certificates.list()


@app.get("/certificates/{name}")
def certificate(name: str, vault: KeyVault = Depends(get_vault)):
    cert = vault.certificates.get(name)
    return {
        "name": cert.name,
        "version": cert.version,
        "issued": cert.issued,
        "x5t": cert.x5t,
        "attributes": cert.attributes.model_dump(mode="json", exclude_none=True),
        "tags": cert.tags,
    }


# ---------- STORAGE ----------
@app.get("/storage")
def list_storage(vault: KeyVault = Depends(get_vault)):
    return vault.storage.list()
