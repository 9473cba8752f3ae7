"""
Support for authenticating to the cloud's identity service and for discovering the endpoints of the
other services.

A :py:class:`Session` holds a :py:class:`Credential` and lazily exchanges it for a bearer token
and a service catalog.  The token is cached until shortly before it expires; when several threads
find that a new token is needed at the same time, only one of them contacts the identity service
and the others wait for its result.
"""
import time, logging, threading
from collections import namedtuple
from collections.abc import Mapping
from concurrent.futures import Future
from datetime import datetime, timezone

from . import system, NotAuthenticated, NotProvisioned, ServiceError, TransportError
from .transport import Transport
from hew.base.config import ConfigurationException, load_from_file, merge_config, configure_log

DEFAULT_REGION = "region-a.geo-1"
ENDPOINTS = {
    "region-a.geo-1": "https://region-a.geo-1.identity.hpcloudsvc.com:35357/v2.0/",
    "region-b.geo-1": "https://region-b.geo-1.identity.hpcloudsvc.com:35357/v2.0/"
}
REGIONS = list(ENDPOINTS.keys())

TOKEN_EXPIRE_EARLY = 10     # seconds

deflog = system.getSysLogger().getChild("auth")

_Credential = namedtuple("_Credential", "access_key secret_key tenant_id tenant_name region")

class Credential(_Credential):
    """
    the API credentials used to authenticate to the identity service.  A tenant may be given
    either by its ID or by its name, but not both.
    """
    __slots__ = ()

    def __new__(cls, access_key: str, secret_key: str, tenant_id: str=None, tenant_name: str=None,
                region: str=None):
        if not access_key or not secret_key:
            raise ValueError("Credential: access_key and secret_key are both required")
        if tenant_id and tenant_name:
            raise ValueError("Credential: only one of tenant_id and tenant_name may be given")
        return super(Credential, cls).__new__(cls, access_key, secret_key, tenant_id or None,
                                              tenant_name or None, region or DEFAULT_REGION)

    @classmethod
    def create(cls, access_key: str, secret_key: str, tenant: str=None, region: str=None):
        """
        create a Credential, interpreting a tenant made up only of digits as a tenant ID and
        anything else as a tenant name.
        """
        tenant_id = tenant_name = None
        if tenant is not None:
            tenant = str(tenant)
            if tenant.isdigit():
                tenant_id = tenant
            else:
                tenant_name = tenant
        return cls(access_key, secret_key, tenant_id, tenant_name, region)

EndpointDescriptor = namedtuple("EndpointDescriptor", "service_type version region public_url")
EndpointDescriptor.__doc__ = "a description of a service endpoint taken from the service catalog"

_AuthState = namedtuple("_AuthState", "token expires tenant_id catalog")
_NOT_AUTHED = _AuthState(None, 0, None, {})

def parse_expiry(expires: str) -> float:
    """
    convert an ISO 8601 expiration timestamp from the identity service into epoch seconds.
    Timestamps without a timezone are taken to be in UTC.
    """
    if expires.endswith('Z'):
        expires = expires[:-1] + "+00:00"
    when = datetime.fromisoformat(expires)
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return when.timestamp()

class Session:
    """
    an authenticated session with the cloud.  It caches the bearer token and service catalog
    returned by the identity service.

    This class supports the following configuration parameters:

    ``identity_endpoints``
        (dict) _optional_.  a mapping of region names to identity service URLs that extends (or
        overrides) the built-in region table.
    ``transport``
        (dict) _optional_.  the configuration for the :py:class:`~hew.cloud.transport.Transport`
        that the session creates when one is not provided to the constructor.
    """

    def __init__(self, credential: Credential, config: Mapping=None, transport: Transport=None,
                 log: logging.Logger=None, clock=None):
        """
        create the session.  No network access takes place until a token is needed.
        :param Credential credential:  the API credentials to authenticate with
        :param dict   config:  the configuration parameters (see class documentation)
        :param Transport transport:  the transport to send requests through; if not provided,
                               one will be created from the ``transport`` config parameter.
        :param Logger    log:  the Logger to send messages to
        :param callable clock: a function returning the current time in epoch seconds
                               (default: ``time.time``)
        """
        if not config:
            config = {}
        if not log:
            log = deflog
        self.log = log

        self._cred = credential
        self._identity_endpoints = dict(ENDPOINTS)
        extra = config.get('identity_endpoints', {})
        if not isinstance(extra, Mapping):
            raise ConfigurationException("identity_endpoints: must be a dictionary")
        self._identity_endpoints.update(extra)

        if not transport:
            transport = Transport(config.get('transport', {}), log=log.getChild("transport"))
        self.transport = transport
        self._clock = clock or time.time

        self._lock = threading.RLock()
        self._state = _NOT_AUTHED
        self._pending = None

    @classmethod
    def from_config(cls, config: Mapping, transport: Transport=None, log: logging.Logger=None):
        """
        create a Session whose credentials are taken from the given configuration.  In addition
        to the parameters listed in the class documentation, the configuration must include
        ``access_key`` and ``secret_key`` and may include ``tenant`` and ``region``.
        """
        missing = [p for p in "access_key secret_key".split() if not config.get(p)]
        if missing:
            raise ConfigurationException("Missing required config parameter(s): " +
                                         ", ".join(missing))
        cred = Credential.create(config['access_key'], config['secret_key'],
                                 config.get('tenant'), config.get('region'))
        return cls(cred, config, transport, log)

    @classmethod
    def from_config_file(cls, configfile: str, defaults: Mapping=None, transport: Transport=None,
                         log: logging.Logger=None):
        """
        create a Session from a YAML or JSON configuration file.  The file holds the same
        parameters accepted by :py:meth:`from_config`; values missing from it are taken from
        ``defaults``.  If the configuration includes a ``logfile`` parameter, logging is
        configured from it (see :py:func:`hew.base.config.configure_log`).
        :param str configfile:  the path to the configuration file
        :param dict  defaults:  default configuration values
        :raises ConfigurationException:  if the file cannot be parsed or is missing required
                                         parameters
        """
        config = load_from_file(configfile)
        if defaults:
            config = merge_config(config, defaults)
        if config.get('logfile'):
            configure_log(config=config)
        return cls.from_config(config, transport, log)

    @property
    def credential(self) -> Credential:
        return self._cred

    @property
    def region(self) -> str:
        return self._cred.region

    @property
    def is_authenticated(self) -> bool:
        """
        True if the session holds a token that can be used without contacting the identity service
        """
        return self._is_fresh(self._state)

    @property
    def token_expires(self) -> float:
        """
        the time (in epoch seconds) that the current token expires, or None if not authenticated
        """
        return self._state.expires or None

    @property
    def tenant_id(self) -> str:
        """
        the ID of the tenant the session operates under.  This is taken from the credential or,
        if only a tenant name was given, from the identity service's response; it is None if
        neither has provided one.
        """
        return self._cred.tenant_id or self._state.tenant_id

    @property
    def service_catalog(self) -> Mapping:
        """
        a copy of the cached service catalog, mapping service types to lists of
        :py:class:`EndpointDescriptor`
        """
        return dict((k, list(v)) for k, v in self._state.catalog.items())

    def _is_fresh(self, state: _AuthState) -> bool:
        return bool(state.token) and self._clock() < state.expires - TOKEN_EXPIRE_EARLY

    def invalidate(self):
        """
        discard the cached token and catalog so that the next request re-authenticates
        """
        with self._lock:
            self._state = _NOT_AUTHED

    def get_bearer_token(self) -> str:
        """
        return a token to present to services.  A cached token is returned if it is not about to
        expire; otherwise, a new one is obtained from the identity service.
        :raises NotAuthenticated:  if a token could not be obtained
        """
        with self._lock:
            state = self._state
            if self._is_fresh(state):
                return state.token
            pending = self._pending
            leader = pending is None
            if leader:
                pending = Future()
                self._pending = pending

        if not leader:
            return pending.result().token

        try:
            state = self._authenticate()
        except BaseException as ex:
            with self._lock:
                self._pending = None
            shared = ex
            if not isinstance(ex, Exception):
                # e.g. KeyboardInterrupt: only the leader's thread sees the interrupt itself
                shared = NotAuthenticated("Authentication interrupted", self.region, cause=ex)
            pending.set_exception(shared)
            raise

        with self._lock:
            self._state = state
            self._pending = None
        pending.set_result(state)
        return state.token

    def _authenticate(self) -> _AuthState:
        cred = self._cred
        endpoint = self._identity_endpoints.get(cred.region)
        if not endpoint:
            raise NotAuthenticated("Unrecognized region: " + str(cred.region), cred.region)
        if not endpoint.endswith('/'):
            endpoint += '/'

        auth = {"apiAccessKeyCredentials": {"accessKey": cred.access_key,
                                            "secretKey": cred.secret_key}}
        if cred.tenant_id:
            auth['tenantId'] = cred.tenant_id
        elif cred.tenant_name:
            auth['tenantName'] = cred.tenant_name

        url = endpoint + "tokens"
        self.log.debug("Authenticating to %s", url)
        try:
            resp = self.transport.execute("POST", url, json={"auth": auth})
        except TransportError as ex:
            self.log.warning("Authentication in %s failed: %s", cred.region, str(ex))
            raise NotAuthenticated(region=cred.region, code=ex.code, cause=ex) from ex
        except ServiceError as ex:
            raise NotAuthenticated(region=cred.region, cause=ex) from ex

        try:
            return self._parse_access(resp.data)
        except (KeyError, TypeError, ValueError, AttributeError) as ex:
            raise NotAuthenticated("Unexpected response from identity service: missing or bad " +
                                   str(ex), cred.region, cause=ex) from ex

    def _parse_access(self, data: Mapping) -> _AuthState:
        access = data['access']
        token = access['token']
        tenant = token.get('tenant') or {}

        catalog = {}
        for svc in access.get('serviceCatalog', []):
            eps = catalog.setdefault(svc['type'], [])
            for ep in svc.get('endpoints', []):
                eps.append(EndpointDescriptor(svc['type'], ep.get('versionId'), ep.get('region'),
                                              ep.get('publicURL')))

        return _AuthState(token['id'], parse_expiry(token['expires']), tenant.get('id'), catalog)

    def resolve_endpoint(self, service_type: str, version: str) -> str:
        """
        return the public URL of the given service in this session's region, authenticating first
        if necessary.  None is returned if the catalog does not include a matching endpoint.
        :param str service_type:  the service type (e.g. "object-store")
        :param str version:       the service version (e.g. "1.0")
        :raises NotAuthenticated:  if a token could not be obtained
        """
        self.get_bearer_token()
        for ep in self._state.catalog.get(service_type, []):
            if ep.version == version and ep.region == self.region:
                return ep.public_url
        return None

    def require_endpoint(self, service_type: str, version: str) -> str:
        """
        return the public URL of the given service in this session's region.
        :raises NotProvisioned:  if the catalog does not include a matching endpoint
        :raises NotAuthenticated:  if a token could not be obtained
        """
        url = self.resolve_endpoint(service_type, version)
        if not url:
            raise NotProvisioned(service_type, version, self.region)
        return url
