"""
An in-process simulation of the identity, object storage, and CDN services for use in tests.  An
instance's :py:meth:`SimCloud.request` method can stand in for ``requests.Session.request``.
"""
import json, hashlib
from urllib.parse import unquote

import requests
from requests.structures import CaseInsensitiveDict

TENANT_ID = "10101"
IDENTITY_URL = "https://id.sim.test/v2.0/"
STORAGE_URL = "https://objects.sim.test/v1/" + TENANT_ID
CDN_URL = "https://cdn.sim.test/v1/" + TENANT_ID
REGION = "region-a.geo-1"

SESSION_CONFIG = {
    "access_key": "SIMACCESSKEY",
    "secret_key": "simsecret",
    "tenant": "sim-project",
    "region": REGION,
    "identity_endpoints": { REGION: IDENTITY_URL }
}

OBJECT_POST_HEADERS = "content-type content-disposition content-encoding x-delete-at " \
                      "x-delete-after".split()

def mkresp(status=200, body=b'', headers=None, reason=None):
    resp = requests.Response()
    resp.status_code = status
    resp.reason = reason or "Simulated"
    resp.headers = CaseInsensitiveDict(headers or {})
    if isinstance(body, str):
        body = body.encode('utf-8')
    resp._content = body
    resp._content_consumed = True
    resp.encoding = 'utf-8'
    return resp

def jsonresp(data, status=200):
    return mkresp(status, json.dumps(data), {"Content-Type": "application/json; charset=utf-8"})

class SimCloud:

    def __init__(self):
        self.tokens = set()
        self.auth_count = 0
        self.account_meta = {}
        self.containers = {}
        self.cdn = {}
        self.corrupt_upload = False
        self.corrupt_download = False
        self.requests = []

    def request(self, method, url, headers=None, stream=False, timeout=None, json=None,
                data=None, params=None, **kw):
        headers = CaseInsensitiveDict(headers or {})
        self.requests.append((method, url, dict(headers)))

        if url == IDENTITY_URL + "tokens":
            return self._authenticate(json)
        if headers.get('x-auth-token') not in self.tokens:
            return mkresp(401, "Unauthorized")
        if url == IDENTITY_URL + "tenants":
            return jsonresp({"tenants": [{"id": TENANT_ID, "name": "sim-project"}]})
        if url.startswith(STORAGE_URL):
            path = url[len(STORAGE_URL):].lstrip('/')
            return self._storage(method, path, headers, data, params or {})
        if url.startswith(CDN_URL):
            return self._cdn(method, unquote(url[len(CDN_URL):].lstrip('/')), headers)
        return mkresp(404, "Not Found")

    def _authenticate(self, body):
        creds = body['auth']['apiAccessKeyCredentials']
        if creds['accessKey'] != SESSION_CONFIG['access_key'] or \
           creds['secretKey'] != SESSION_CONFIG['secret_key']:
            return mkresp(401, "Unauthorized")
        self.auth_count += 1
        token = "simtoken%d" % self.auth_count
        self.tokens.add(token)
        return jsonresp({"access": {
            "token": {"id": token, "expires": "2099-01-01T00:00:00.000Z",
                      "tenant": {"id": TENANT_ID, "name": "sim-project"}},
            "serviceCatalog": [
                {"type": "object-store", "endpoints": [
                    {"region": REGION, "versionId": "1.0", "publicURL": STORAGE_URL}]},
                {"type": "hpext:cdn", "endpoints": [
                    {"region": REGION, "versionId": "1.0", "publicURL": CDN_URL}]},
                {"type": "identity", "endpoints": [
                    {"region": REGION, "versionId": "2.0", "publicURL": IDENTITY_URL}]}
            ]
        }})

    def _storage(self, method, path, headers, data, params):
        if not path:
            return self._account(method, headers)
        parts = path.split('/', 1)
        cname = unquote(parts[0])
        if len(parts) == 1 or not parts[1]:
            return self._container(method, cname, headers, params)
        return self._object(method, cname, unquote(parts[1]), headers, data)

    def _account(self, method, headers):
        if method == "GET":
            return jsonresp([{"name": n, "count": len(c['objects']),
                              "bytes": sum(len(o['content']) for o in c['objects'].values())}
                             for n, c in sorted(self.containers.items())])
        if method == "HEAD":
            hdrs = {"X-Account-Container-Count": str(len(self.containers))}
            hdrs.update(self.account_meta)
            return mkresp(204, b'', hdrs)
        if method == "POST":
            self._update_meta(self.account_meta, headers, "x-account-")
            return mkresp(204)
        return mkresp(405)

    def _update_meta(self, target, headers, prefix, extra=()):
        rmprefix = "x-remove-" + prefix[len("x-"):]
        for key, val in headers.items():
            key = key.lower()
            if key.startswith(rmprefix):
                target.pop(prefix + key[len(rmprefix):], None)
            elif key.startswith(prefix) or key in extra:
                if val == '':
                    target.pop(key, None)
                else:
                    target[key] = val

    def _container(self, method, cname, headers, params):
        cont = self.containers.get(cname)
        if method == "PUT":
            if cont is not None:
                return mkresp(202)
            self.containers[cname] = {"meta": {}, "objects": {}}
            return mkresp(201)
        if cont is None:
            return mkresp(404, "Not Found")

        if method == "DELETE":
            if cont['objects']:
                return mkresp(409, "There was a conflict when trying to complete your request.")
            del self.containers[cname]
            return mkresp(204)
        if method == "HEAD":
            hdrs = {"X-Container-Object-Count": str(len(cont['objects']))}
            hdrs.update(cont['meta'])
            return mkresp(204, b'', hdrs)
        if method == "POST":
            self._update_meta(cont['meta'], headers, "x-container-", ("x-versions-location",))
            return mkresp(204)
        if method == "GET":
            names = sorted(cont['objects'].keys())
            if params.get('prefix'):
                names = [n for n in names if n.startswith(params['prefix'])]
            if params.get('marker'):
                names = [n for n in names if n > params['marker']]
            if params.get('limit'):
                names = names[:int(params['limit'])]
            return jsonresp([{"name": n, "bytes": len(cont['objects'][n]['content']),
                              "hash": cont['objects'][n]['etag'],
                              "content_type": cont['objects'][n]['meta'].get('content-type')}
                             for n in names])
        return mkresp(405)

    def _object_headers(self, obj):
        hdrs = {"ETag": obj['etag'], "Content-Length": str(len(obj['content'])),
                "Last-Modified": "Tue, 15 Oct 2024 10:00:00 GMT", "Accept-Ranges": "bytes",
                "X-Timestamp": "1728986400.00000", "X-Trans-Id": "tx1234"}
        hdrs.update(obj['meta'])
        return hdrs

    def _object(self, method, cname, oname, headers, data):
        cont = self.containers.get(cname)
        if cont is None:
            return mkresp(404, "Not Found")
        obj = cont['objects'].get(oname)

        if method == "PUT":
            if data is None:
                data = b''
            elif not isinstance(data, bytes):
                data = b''.join(data)
            digest = hashlib.md5(data).hexdigest()
            if headers.get('etag') and headers['etag'] != digest:
                return mkresp(422, "Unprocessable Entity")
            meta = {"content-type": headers.get('content-type', "application/octet-stream")}
            cont['objects'][oname] = {"content": data, "etag": digest, "meta": meta}
            if self.corrupt_upload:
                digest = hashlib.md5(data + b'x').hexdigest()
            return mkresp(201, b'', {"ETag": digest})

        if obj is None:
            return mkresp(404, "Not Found")
        if method == "DELETE":
            del cont['objects'][oname]
            return mkresp(204)
        if method == "HEAD":
            return mkresp(200, b'', self._object_headers(obj))
        if method == "GET":
            content = obj['content']
            if self.corrupt_download:
                content = content[:-1] + b'#'
            return mkresp(200, content, self._object_headers(obj))
        if method == "POST":
            meta = {}
            self._update_meta(meta, headers, "x-object-meta-", OBJECT_POST_HEADERS)
            obj['meta'] = meta
            return mkresp(202)
        return mkresp(405)

    def _cdn(self, method, cname, headers):
        if not cname:
            if method == "GET":
                return mkresp(200, "".join(n + "\n" for n in sorted(self.cdn)),
                              {"Content-Type": "text/plain; charset=utf-8"})
            return mkresp(405)

        uris = {"X-CDN-Uri": "http://h1234.cdn.sim.test",
                "X-CDN-SSL-Uri": "https://a1234.cdn.sim.test"}
        if method == "PUT":
            self.cdn[cname] = int(headers.get('x-ttl', 86400))
            return mkresp(201, b'', dict(uris, **{"X-TTL": str(self.cdn[cname])}))
        if cname not in self.cdn:
            return mkresp(404, "Not Found")
        if method == "POST":
            self.cdn[cname] = int(headers['x-ttl'])
            return mkresp(202, b'', uris)
        if method == "HEAD":
            return mkresp(204, b'', dict(uris, **{"X-TTL": str(self.cdn[cname]),
                                                  "X-CDN-Enabled": "True"}))
        if method == "DELETE":
            del self.cdn[cname]
            return mkresp(204)
        return mkresp(405)
