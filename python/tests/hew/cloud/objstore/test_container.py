import os, logging, tempfile, hashlib
import unittest as test
from unittest.mock import patch, Mock

from hew.cloud import sim, NotProvisioned, TransportError
from hew.cloud.auth import Session
from hew.cloud.objstore.container import Container, CdnConfig, DEFAULT_CDN_TTL
from hew.cloud.objstore.permissions import Permissions
from hew.cloud.objstore.storedobj import StoredObject

tmpdir = tempfile.TemporaryDirectory(prefix="_test_container.")
loghdlr = None
rootlog = None
def setUpModule():
    global loghdlr
    global rootlog
    rootlog = logging.getLogger()
    loghdlr = logging.FileHandler(os.path.join(tmpdir.name,"test_container.log"))
    loghdlr.setLevel(logging.DEBUG)
    rootlog.addHandler(loghdlr)

def tearDownModule():
    global loghdlr
    if loghdlr:
        if rootlog:
            rootlog.removeHandler(loghdlr)
            loghdlr.flush()
            loghdlr.close()
        loghdlr = None
    tmpdir.cleanup()

def mkobj(content, ctype="text/plain"):
    return {"content": content, "etag": hashlib.md5(content).hexdigest(),
            "meta": {"content-type": ctype}}

class TestContainer(test.TestCase):

    def setUp(self):
        self.sim = sim.SimCloud()
        patcher = patch('requests.Session.request', side_effect=self.sim.request)
        patcher.start()
        self.addCleanup(patcher.stop)

        self.sess = Session.from_config(sim.SESSION_CONFIG)
        self.sim.containers['goob'] = {"meta": {}, "objects": {}}
        self.cont = Container(self.sess, "goob")

    def posts(self):
        return [r for r in self.sim.requests if r[0] == "POST" and "tokens" not in r[1]]

    def test_ctor(self):
        self.assertEqual(self.cont.name, "goob")
        self.assertIs(self.cont.session, self.sess)
        self.assertIs(self.cont.transport, self.sess.transport)
        self.assertEqual(self.sim.requests, [])

    def test_public_url(self):
        self.assertEqual(self.cont.public_url(), sim.STORAGE_URL + "/goob")
        self.assertEqual(Container(self.sess, "my stuff/2").public_url(),
                         sim.STORAGE_URL + "/my%20stuff%2F2")

    def test_not_provisioned(self):
        sess = Mock()
        sess.require_endpoint.side_effect = NotProvisioned("object-store", "1.0")
        cont = Container(sess, "goob", Mock())
        with self.assertRaises(NotProvisioned):
            cont.list_objects()
        with self.assertRaises(NotProvisioned):
            cont.is_cdn_enabled()
        cont.transport.execute.assert_not_called()

    def test_list_objects(self):
        self.assertEqual(self.cont.list_objects(), [])

        objs = self.sim.containers['goob']['objects']
        objs['a/1.txt'] = mkobj(b'one')
        objs['a/2.txt'] = mkobj(b'two')
        objs['b.json'] = mkobj(b'{}', "application/json")

        names = [o['name'] for o in self.cont.list_objects()]
        self.assertEqual(names, ['a/1.txt', 'a/2.txt', 'b.json'])
        names = [o['name'] for o in self.cont.list_objects(prefix="a/")]
        self.assertEqual(names, ['a/1.txt', 'a/2.txt'])
        names = [o['name'] for o in self.cont.list_objects(marker="a/1.txt", limit=1)]
        self.assertEqual(names, ['a/2.txt'])

        listing = self.cont.list_objects(prefix="b")
        self.assertEqual(listing[0]['bytes'], 2)
        self.assertEqual(listing[0]['content_type'], "application/json")

    def test_list_query(self):
        transport = Mock()
        transport.execute.return_value = Mock(content=b'[]', data=[])
        sess = Mock()
        sess.require_endpoint.return_value = sim.STORAGE_URL
        cont = Container(sess, "goob", transport)
        cont.list_objects("a/", "/", "a")
        transport.execute.assert_called_once_with(
            "GET", sim.STORAGE_URL + "/goob", session=sess,
            query={"format": "json", "prefix": "a/", "delimiter": "/", "path": "a"})

    def test_missing_container(self):
        cont = Container(self.sess, "gurn")
        with self.assertRaises(TransportError) as cm:
            cont.list_objects()
        self.assertEqual(cm.exception.code, 404)

    def test_metadata(self):
        md = self.cont.get_all_metadata()
        self.assertEqual(md, {"x-container-object-count": "0"})

        self.assertIsNone(self.cont.get_meta_value("color"))
        self.cont.set_meta_value("Color", "blue & green")
        self.assertEqual(self.sim.containers['goob']['meta']['x-container-meta-color'],
                         "blue%20%26%20green")
        self.assertEqual(self.cont.get_meta_value("color"), "blue & green")
        self.assertEqual(self.cont.get_meta_value("X-Container-Meta-Color"), "blue & green")
        self.assertIn("x-container-meta-color", self.cont.get_all_metadata())

        self.cont.delete_meta_value("color")
        self.assertEqual(self.posts()[-1][2]["x-remove-container-meta-color"], "")
        self.assertIsNone(self.cont.get_meta_value("color"))

    def test_sync(self):
        self.cont.set_sync("s3cret key", "https://objects.b.test/v1/10101/backup")
        meta = self.sim.containers['goob']['meta']
        self.assertEqual(meta['x-container-sync-key'], "s3cret%20key")
        self.assertEqual(meta['x-container-sync-to'], "https://objects.b.test/v1/10101/backup")
        posts = self.posts()
        self.assertIn("x-container-sync-key", posts[0][2])
        self.assertIn("x-container-sync-to", posts[1][2])

    def test_sync_stops_on_failure(self):
        transport = Mock()
        transport.execute.side_effect = TransportError(code=403)
        sess = Mock()
        sess.require_endpoint.return_value = sim.STORAGE_URL
        cont = Container(sess, "goob", transport)
        with self.assertRaises(TransportError):
            cont.set_sync("key", "target")
        self.assertEqual(transport.execute.call_count, 1)

    def test_versioning(self):
        self.cont.enable_versioning("goob-versions")
        self.assertEqual(self.sim.containers['goob']['meta']['x-versions-location'],
                         "goob-versions")
        self.cont.disable_versioning()
        self.assertNotIn('x-versions-location', self.sim.containers['goob']['meta'])

    def test_permissions(self):
        self.assertEqual(self.cont.get_permissions(), Permissions())

        self.cont.make_public()
        meta = self.sim.containers['goob']['meta']
        self.assertEqual(meta['x-container-read'], ".r:*,.rlistings")
        perms = self.cont.get_permissions()
        self.assertEqual(perms, Permissions().grant_public_read().grant_world_listing())

        perms.grant_read("joe@hp.com").grant_write("joe@hp.com").grant_read("sue@hp.com")
        self.cont.set_permissions(perms)
        self.assertEqual(self.cont.get_permissions(), perms)
        self.assertIn("*:sue@hp.com", meta['x-container-read'])
        self.assertEqual(meta['x-container-write'], "*:joe@hp.com")
        posts = self.posts()
        self.assertIn("x-container-read", posts[-2][2])
        self.assertIn("x-container-write", posts[-1][2])

        self.cont.revoke_read_from_user("sue@hp.com")
        self.cont.revoke_listing_from_world()
        self.assertEqual(meta['x-container-read'], ".r:*,*:joe@hp.com")

        self.cont.make_private()
        self.assertEqual(self.cont.get_permissions(), Permissions())
        self.assertNotIn('x-container-read', meta)
        self.assertNotIn('x-container-write', meta)

    def test_user_grants(self):
        self.cont.grant_read_to_user("joe")
        self.cont.grant_write_to_user("joe")
        self.cont.grant_listing_to_world()
        perms = self.cont.get_permissions()
        self.assertEqual(perms.read, ["joe"])
        self.assertEqual(perms.write, ["joe"])
        self.assertTrue(perms.world_listable)
        self.cont.revoke_write_from_user("joe")
        self.assertEqual(self.cont.get_permissions().write, [])

    def test_world_grants(self):
        meta = self.sim.containers['goob']['meta']
        self.cont.grant_read_to_user("joe")

        self.cont.grant_read_to_world()
        self.assertEqual(meta['x-container-read'], "*:joe,.r:*")
        self.assertEqual(self.cont.get_permissions().read, ["joe", "*"])
        self.assertNotIn('x-container-write', meta)

        self.cont.grant_write_to_world()
        self.assertEqual(meta['x-container-write'], ".r:*")
        self.assertEqual(self.cont.get_permissions().write, ["*"])

        self.cont.revoke_read_from_world()
        self.assertEqual(meta['x-container-read'], "*:joe")
        self.assertEqual(meta['x-container-write'], ".r:*")

        self.cont.revoke_write_from_world()
        self.assertNotIn('x-container-write', meta)
        self.assertEqual(self.cont.get_permissions(), Permissions("*:joe"))

    def test_set_permissions_stops_on_failure(self):
        transport = Mock()
        transport.execute.side_effect = TransportError(code=500)
        sess = Mock()
        sess.require_endpoint.return_value = sim.STORAGE_URL
        cont = Container(sess, "goob", transport)
        with self.assertRaises(TransportError):
            cont.set_permissions(Permissions().grant_public_read())
        self.assertEqual(transport.execute.call_count, 1)
        self.assertIn("x-container-read", transport.execute.call_args[1]['headers'])

    def test_cdn(self):
        self.assertFalse(self.cont.is_cdn_enabled())

        cfg = self.cont.enable_cdn()
        self.assertIsInstance(cfg, CdnConfig)
        self.assertEqual(cfg.ttl, DEFAULT_CDN_TTL)
        self.assertEqual(cfg.cdn_uri, "http://h1234.cdn.sim.test")
        self.assertEqual(cfg.cdn_ssl_uri, "https://a1234.cdn.sim.test")
        self.assertTrue(cfg.enabled)
        self.assertTrue(self.cont.is_cdn_enabled())

        cfg = self.cont.update_cdn_ttl(600)
        self.assertEqual(cfg.ttl, 600)
        cfg = self.cont.get_cdn_config()
        self.assertEqual(cfg, CdnConfig("http://h1234.cdn.sim.test", "https://a1234.cdn.sim.test",
                                        600, True))

        self.cont.disable_cdn()
        self.assertFalse(self.cont.is_cdn_enabled())
        with self.assertRaises(TransportError) as cm:
            self.cont.get_cdn_config()
        self.assertEqual(cm.exception.code, 404)

    def test_cdn_ttl(self):
        cfg = self.cont.enable_cdn(3600)
        self.assertEqual(cfg.ttl, 3600)
        self.assertEqual(self.sim.cdn['goob'], 3600)

    def test_get_object(self):
        obj = self.cont.get_object("a/1.txt")
        self.assertIsInstance(obj, StoredObject)
        self.assertIs(obj.container, self.cont)
        self.assertEqual(obj.name, "a/1.txt")
        self.assertEqual(self.sim.requests, [])

    def test_put_get(self):
        digest = self.cont.put("hello.txt", b"hello world", "text/plain")
        self.assertEqual(digest, hashlib.md5(b"hello world").hexdigest())
        hdrs, content = self.cont.get("hello.txt")
        self.assertEqual(content, b"hello world")
        self.assertEqual(hdrs['content-type'], "text/plain")

    def test_delete_all_objects(self):
        objs = self.sim.containers['goob']['objects']
        for i in range(5):
            objs["obj%d" % i] = mkobj(b'x' * i)
        self.assertEqual(self.cont.delete_all_objects(), 5)
        self.assertEqual(objs, {})
        self.assertEqual(self.cont.delete_all_objects(), 0)

if __name__ == '__main__':
    test.main()
