"""
Shared fixtures: an in-memory vault served through a requests-compatible
session, so every client call goes through the real dispatcher.
"""
import base64
import json
import uuid
from urllib.parse import parse_qs, urlsplit

import pytest
import requests
from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.serialization import pkcs12
from jwt.utils import base64url_decode, base64url_encode

from azkeyvault.clients.key_vault import key_vault

BASE = "https://testvault.vault.azure.net"
TOKEN = "test-token"
FAKE_CER = base64.b64encode(b"0\x82\x01\x00fake-der").decode()


def b64url(data: bytes) -> str:
    return base64url_encode(data).decode()


def unb64url(data: str) -> bytes:
    return base64url_decode(data)


def make_response(status: int, payload=None, url: str = "") -> requests.Response:
    resp = requests.Response()
    resp.status_code = status
    resp.reason = "OK" if status < 400 else "Error"
    resp.url = url
    resp.encoding = "utf-8"
    if payload is not None:
        resp._content = json.dumps(payload).encode()
        resp.headers["Content-Type"] = "application/json"
    else:
        resp._content = b""
    return resp


def not_found(kind: str, name: str):
    return 404, {"error": {"code": f"{kind}NotFound", "message": f"A {kind.lower()} with (name/id) {name} was not found in this key vault."}}


class FakeVault:
    """Just enough of the Key Vault REST surface to exercise the client."""

    def __init__(self, region: str = "westeurope", page_size: int = 2):
        self.region = region
        self.page_size = page_size
        self.objects = {"secrets": {}, "keys": {}, "certificates": {}}
        self.storage = {}
        self.sas = {}
        self.contacts = None
        self.issuers = {}
        self.issue_after = 0
        self.pending = {}
        self.cert_fetches = {}
        self._clock = 1_600_000_000

    # ---------- helpers ----------
    def _tick(self) -> int:
        self._clock += 10
        return self._clock

    def _id(self, type_, name, version=None):
        return f"{BASE}/{type_}/{name}" + (f"/{version}" if version else "")

    def _new_version(self, type_, name, props):
        version = uuid.uuid4().hex
        now = self._tick()
        attrs = {"enabled": True, "created": now, "updated": now, "recoveryLevel": "Recoverable+Purgeable"}
        attrs.update(props.pop("attributes", {}) or {})
        bundle = dict(props, attributes=attrs)
        if type_ == "keys":
            bundle["key"] = dict(bundle.get("key") or {}, kid=self._id(type_, name, version))
        else:
            bundle["id"] = self._id(type_, name, version)
        self.objects[type_].setdefault(name, []).append(bundle)
        return bundle

    def _find(self, type_, name, version=None):
        versions = self.objects[type_].get(name)
        if not versions:
            return None
        if version is None:
            return versions[-1]
        for v in versions:
            oid = v["key"]["kid"] if type_ == "keys" else v["id"]
            if oid.endswith("/" + version):
                return v
        return None

    def _page(self, items, path, params):
        start = int(params.get("$skiptoken", 0))
        chunk = items[start:start + self.page_size]
        page = {"value": chunk}
        if start + self.page_size < len(items):
            page["nextLink"] = f"{BASE}/{path}?api-version=7.4&$skiptoken={start + self.page_size}"
        return page

    @staticmethod
    def _item(bundle, id_field="id", versioned=True):
        """Listing entry; collection listings carry unversioned ids."""
        oid = bundle["key"]["kid"] if id_field == "kid" else bundle["id"]
        if not versioned:
            oid = oid.rsplit("/", 1)[0]
        item = {k: bundle[k] for k in ("attributes", "contentType", "tags") if k in bundle}
        item[id_field] = oid
        return item

    # ---------- routing ----------
    def handle(self, method, path, params, body):
        parts = [p for p in path.split("/") if p]
        type_ = parts[0]
        if type_ == "storage":
            return self._storage(method, parts[1:], params, body)
        if type_ == "certificates" and len(parts) > 1 and parts[1] in ("contacts", "issuers"):
            return self._cert_admin(method, parts[1:], params, body)
        return self._versioned(method, type_, parts[1:], params, body)

    def _versioned(self, method, type_, rest, params, body):
        kind = {"secrets": "Secret", "keys": "Key", "certificates": "Certificate"}[type_]
        id_field = "kid" if type_ == "keys" else "id"

        if not rest:
            items = [self._item(v[-1], id_field, versioned=False) for v in self.objects[type_].values()]
            return 200, self._page(items, type_, params)
        if rest == ["restore"]:
            return self._restore(type_, body)

        name, sub = rest[0], (rest[1] if len(rest) > 1 else None)

        if method == "PUT" and sub is None:
            return 200, self._new_version(type_, name, dict(body))
        if method == "POST" and sub == "create":
            return self._create(type_, name, body)
        if method == "POST" and sub == "import":
            bundle = self._new_version(type_, name, {"policy": body.get("policy", {}),
                                                    "attributes": body.get("attributes", {}),
                                                    "tags": body.get("tags", {})})
            bundle["cer"] = self._imported_der(body)
            return 200, bundle

        if name not in self.objects[type_]:
            return not_found(kind, name)

        if sub == "versions":
            items = [self._item(v, id_field) for v in self.objects[type_][name]]
            return 200, self._page(items, f"{type_}/{name}/versions", params)
        if sub == "backup":
            blob = json.dumps({"region": self.region, "type": type_, "name": name,
                               "versions": self.objects[type_][name]})
            return 200, {"value": base64.urlsafe_b64encode(blob.encode()).decode()}
        if sub == "policy":
            policy = self.objects[type_][name][-1]["policy"]
            if method == "PATCH":
                policy.update(body)
            return 200, policy
        if sub == "pending":
            status = "inProgress" if self.pending.get(name, 0) > 0 else "completed"
            if method == "PATCH" and body.get("cancellation_requested"):
                self.pending.pop(name, None)
                status = "cancelled"
            return 200, {"id": f"{BASE}/certificates/{name}/pending", "status": status}

        bundle = self._find(type_, name, sub)
        if bundle is None:
            return not_found(kind, f"{name}/{sub}")
        if len(rest) == 3 and method == "POST":
            return self._key_op(rest[2], body)
        if method == "GET":
            if type_ == "certificates":
                self._certificate_fetched(name, bundle)
            return 200, bundle
        if method == "PATCH":
            return 200, self._patch(bundle, body)
        if method == "DELETE" and sub is None:
            del self.objects[type_][name]
            self.pending.pop(name, None)
            return 200, {"recoveryId": f"{BASE}/deleted{type_}/{name}"}
        return 400, {"error": {"code": "BadRequest", "message": f"unhandled {method} {rest}"}}

    @staticmethod
    def _imported_der(body):
        if body["value"].startswith("-----BEGIN"):
            cert = x509.load_pem_x509_certificates(body["value"].encode())[0]
        else:
            pwd = body.get("pwd")
            _, cert, _ = pkcs12.load_key_and_certificates(base64.b64decode(body["value"]),
                                                          pwd.encode() if pwd else None)
        return base64.b64encode(cert.public_bytes(serialization.Encoding.DER)).decode()

    def _create(self, type_, name, body):
        if type_ == "keys":
            key = {"kty": body["kty"], "key_ops": body.get("key_ops", []), "n": b64url(b"\x01" * 8), "e": "AQAB"}
            props = {"key": key, "attributes": body.get("attributes", {}), "tags": body.get("tags", {})}
            return 200, self._new_version(type_, name, props)
        bundle = self._new_version(type_, name, {"policy": body["policy"], "attributes": body.get("attributes", {}),
                                                "tags": body.get("tags", {})})
        bundle["sid"] = self._id("secrets", name, bundle["id"].rsplit("/", 1)[-1])
        self.pending[name] = self.issue_after
        return 202, {"id": f"{BASE}/certificates/{name}/pending", "status": "inProgress"}

    def _certificate_fetched(self, name, bundle):
        """Issue the certificate once `issue_after` pending fetches have been served."""
        self.cert_fetches[name] = self.cert_fetches.get(name, 0) + 1
        if self.pending.get(name, 0) > 0:
            self.pending[name] -= 1
        elif "cer" not in bundle:
            bundle["cer"] = FAKE_CER

    def _patch(self, bundle, body):
        if "attributes" in body:
            bundle["attributes"].update(body["attributes"])
        bundle["attributes"]["updated"] = self._tick()
        for field in ("contentType", "tags", "policy"):
            if field in body:
                bundle[field] = body[field]
        if "key_ops" in body:
            bundle["key"]["key_ops"] = body["key_ops"]
        return bundle

    def _restore(self, type_, body):
        try:
            blob = json.loads(base64.urlsafe_b64decode(body["value"].encode()))
        except (ValueError, KeyError):
            return 400, {"error": {"code": "BadParameter", "message": "Backup blob is corrupt"}}
        if blob["region"] != self.region or blob["type"] != type_:
            return 400, {"error": {"code": "BadParameter", "message": "Backup blob was created in an incompatible vault"}}
        if blob["name"] in self.objects[type_]:
            return 409, {"error": {"code": "Conflict", "message": f"{blob['name']} already exists"}}
        self.objects[type_][blob["name"]] = [dict(v) for v in blob["versions"]]
        return 200, self.objects[type_][blob["name"]][-1]

    @staticmethod
    def _key_op(op, body):
        value = unb64url(body["value"])
        if op == "encrypt":
            return 200, {"value": b64url(b"enc:" + value)}
        if op == "decrypt":
            return 200, {"value": b64url(value[len(b"enc:"):])}
        if op == "wrapkey":
            return 200, {"value": b64url(b"wrap:" + value)}
        if op == "unwrapkey":
            return 200, {"value": b64url(value[len(b"wrap:"):])}
        if op == "sign":
            return 200, {"value": b64url(b"sig:" + value)}
        if op == "verify":
            return 200, {"value": value == b"sig:" + unb64url(body["digest"])}
        return 400, {"error": {"code": "BadParameter", "message": f"unknown operation {op}"}}

    def _cert_admin(self, method, rest, params, body):
        if rest[0] == "contacts":
            if method == "PUT":
                self.contacts = {"id": f"{BASE}/certificates/contacts", "contacts": body["contacts"]}
            elif method == "DELETE":
                self.contacts = None
                return 200, {}
            if self.contacts is None:
                return 404, {"error": {"code": "ContactsNotFound", "message": "Contacts not found"}}
            return 200, self.contacts
        if len(rest) == 1:
            items = [{"id": i["id"], "provider": i["provider"]} for i in self.issuers.values()]
            return 200, self._page(items, "certificates/issuers", params)
        issuer = rest[1]
        if method == "PUT":
            self.issuers[issuer] = dict(body, id=f"{BASE}/certificates/issuers/{issuer}")
        if issuer not in self.issuers:
            return 404, {"error": {"code": "CertificateIssuerNotFound", "message": f"Issuer {issuer} not found"}}
        if method == "DELETE":
            return 200, self.issuers.pop(issuer)
        return 200, self.issuers[issuer]

    def _storage(self, method, rest, params, body):
        if not rest:
            items = [{"id": s["id"], "resourceId": s["resourceId"], "attributes": s["attributes"]}
                     for s in self.storage.values()]
            return 200, self._page(items, "storage", params)
        if rest == ["restore"]:
            blob = json.loads(base64.urlsafe_b64decode(body["value"].encode()))
            if blob["region"] != self.region:
                return 400, {"error": {"code": "BadParameter", "message": "Backup blob was created in an incompatible vault"}}
            self.storage[blob["name"]] = blob["account"]
            return 200, blob["account"]
        name = rest[0]
        if method == "PUT" and len(rest) == 1:
            now = self._tick()
            attrs = {"enabled": True, "created": now, "updated": now}
            attrs.update(body.get("attributes", {}))
            self.storage[name] = dict(body, id=f"{BASE}/storage/{name}", attributes=attrs)
            return 200, self.storage[name]
        account = self.storage.get(name)
        if account is None:
            return 404, {"error": {"code": "StorageAccountNotFound", "message": f"Storage account {name} not found"}}
        if len(rest) == 1:
            if method == "DELETE":
                return 200, self.storage.pop(name)
            if method == "PATCH":
                for k, v in body.items():
                    if k == "attributes":
                        account["attributes"].update(v)
                    else:
                        account[k] = v
            return 200, account
        if rest[1] == "regeneratekey":
            account["lastRegenerated"] = body["keyName"]
            return 200, account
        if rest[1] == "sas":
            defs = self.sas.setdefault(name, {})
            if len(rest) == 2:
                return 200, self._page([{"id": d["id"], "sid": d["sid"]} for d in defs.values()],
                                       f"storage/{name}/sas", params)
            sas = rest[2]
            if method == "PUT":
                secret_name = f"{name}-{sas}"
                self._new_version("secrets", secret_name, {"value": f"sv=2020&sig={sas}"})
                defs[sas] = dict(body, id=f"{BASE}/storage/{name}/sas/{sas}", sid=f"{BASE}/secrets/{secret_name}")
            if sas not in defs:
                return 404, {"error": {"code": "SasDefinitionNotFound", "message": f"SAS definition {sas} not found"}}
            if method == "DELETE":
                return 200, defs.pop(sas)
            return 200, defs[sas]
        if rest[1] == "backup":
            blob = json.dumps({"region": self.region, "type": "storage", "name": name, "account": account})
            return 200, {"value": base64.urlsafe_b64encode(blob.encode()).decode()}
        return 400, {"error": {"code": "BadRequest", "message": f"unhandled {method} {rest}"}}


class FakeSession:
    """Stands in for requests.Session and records every call."""

    def __init__(self, vault: FakeVault):
        self.vault = vault
        self.calls = []

    def request(self, method, url, headers=None, params=None, json=None, timeout=None):
        split = urlsplit(url)
        query = {k: v[-1] for k, v in parse_qs(split.query).items()}
        query.update(params or {})
        self.calls.append({"method": method, "path": split.path, "params": query,
                           "headers": headers or {}, "body": json})
        status, payload = self.vault.handle(method, split.path, query, json)
        return make_response(status, payload, url)

    def count(self, method, path):
        return sum(1 for c in self.calls if c["method"] == method and c["path"] == path)


@pytest.fixture
def fake():
    return FakeVault()


@pytest.fixture
def session(fake):
    return FakeSession(fake)


@pytest.fixture
def answers():
    """Replies given to the delete confirmation callback, consumed in order."""
    return []


@pytest.fixture
def vault(session, answers):
    def confirm(prompt):
        return answers.pop(0) if answers else False

    return key_vault(BASE, credential=TOKEN, session=session, confirm_callback=confirm, poll_interval=0)
