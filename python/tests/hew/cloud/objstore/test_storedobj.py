import os, io, hmac, hashlib, logging, tempfile
import unittest as test
from unittest.mock import patch, Mock
from datetime import datetime, timezone

from hew.cloud import sim, IntegrityError, TransportError, ServiceError
from hew.cloud.auth import Session
from hew.cloud.objstore.container import Container
from hew.cloud.objstore.storedobj import StoredObject, READONLY_HEADERS

tmpdir = tempfile.TemporaryDirectory(prefix="_test_storedobj.")
loghdlr = None
rootlog = None
def setUpModule():
    global loghdlr
    global rootlog
    rootlog = logging.getLogger()
    loghdlr = logging.FileHandler(os.path.join(tmpdir.name,"test_storedobj.log"))
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

CONTENT = b'Hello, object storage!\n' * 10
DIGEST = hashlib.md5(CONTENT).hexdigest()

class TestStoredObject(test.TestCase):

    def setUp(self):
        self.sim = sim.SimCloud()
        patcher = patch('requests.Session.request', side_effect=self.sim.request)
        patcher.start()
        self.addCleanup(patcher.stop)

        self.sess = Session.from_config(dict(sim.SESSION_CONFIG, transport={"chunk_size": 16}))
        self.sim.containers['goob'] = {"meta": {}, "objects": {}}
        self.objs = self.sim.containers['goob']['objects']
        self.cont = Container(self.sess, "goob")
        self.obj = StoredObject(self.cont, "hello.txt")

    def add(self, name="hello.txt", content=CONTENT, **meta):
        meta.setdefault("content-type", "text/plain")
        self.objs[name] = {"content": content, "etag": hashlib.md5(content).hexdigest(),
                           "meta": meta}

    def mock_transport_obj(self, side_effect):
        transport = Mock()
        transport.execute.side_effect = side_effect
        cont = Mock()
        cont.transport = transport
        cont.public_url.return_value = sim.STORAGE_URL + "/goob"
        return StoredObject(cont, "hello.txt", logging.getLogger("test"))

    def test_url(self):
        self.assertEqual(self.obj.url(), sim.STORAGE_URL + "/goob/hello.txt")
        obj = self.cont.get_object("my docs/read me.txt")
        self.assertEqual(obj.url(), sim.STORAGE_URL + "/goob/my%20docs/read%20me.txt")

    def test_exists(self):
        self.assertFalse(self.obj.exists())
        self.add()
        self.assertTrue(self.obj.exists())

    def test_exists_error(self):
        obj = self.mock_transport_obj(TransportError(code=500))
        with self.assertRaises(TransportError):
            obj.exists()

    def test_put(self):
        self.assertEqual(self.obj.put(CONTENT, "text/plain"), DIGEST)
        self.assertEqual(self.objs['hello.txt']['content'], CONTENT)
        self.assertEqual(self.objs['hello.txt']['meta']['content-type'], "text/plain")
        hdrs = self.sim.requests[-1][2]
        self.assertEqual(hdrs['etag'], DIGEST)
        self.assertEqual(hdrs['content-length'], str(len(CONTENT)))

        self.obj.put("héllo")
        self.assertEqual(self.objs['hello.txt']['content'], "héllo".encode('utf-8'))

    def test_put_mismatch(self):
        self.sim.corrupt_upload = True
        with self.assertRaises(IntegrityError) as cm:
            self.obj.put(CONTENT)
        self.assertEqual(cm.exception.expected, DIGEST)
        self.assertNotEqual(cm.exception.actual, DIGEST)

    def test_put_quoted_etag(self):
        resp = Mock()
        resp.headers = {"etag": '"%s"' % DIGEST.upper()}
        obj = self.mock_transport_obj([resp])
        self.assertEqual(obj.put(CONTENT), DIGEST)

    def test_put_stream(self):
        self.assertEqual(self.obj.put_stream(io.BytesIO(CONTENT), "text/plain"), DIGEST)
        self.assertEqual(self.objs['hello.txt']['content'], CONTENT)
        hdrs = self.sim.requests[-1][2]
        self.assertNotIn('etag', hdrs)
        self.assertNotIn('content-length', hdrs)

        self.obj.put_stream(iter([b'abc', b'def']))
        self.assertEqual(self.objs['hello.txt']['content'], b'abcdef')

    def test_put_stream_mismatch(self):
        self.sim.corrupt_upload = True
        with self.assertRaises(IntegrityError):
            self.obj.put_stream(io.BytesIO(CONTENT))

    def test_get(self):
        self.add()
        hdrs, content = self.obj.get()
        self.assertEqual(content, CONTENT)
        self.assertEqual(hdrs['etag'], DIGEST)
        self.assertEqual(hdrs['content-type'], "text/plain")

    def test_get_missing(self):
        with self.assertRaises(TransportError) as cm:
            self.obj.get()
        self.assertEqual(cm.exception.code, 404)

    def test_get_mismatch(self):
        self.add()
        self.sim.corrupt_download = True
        with self.assertRaises(IntegrityError) as cm:
            self.obj.get()
        self.assertEqual(cm.exception.actual, DIGEST)
        self.assertEqual(cm.exception.url, self.obj.url())

    def test_get_manifest(self):
        self.add(**{"x-object-manifest": "goob_segments/hello.txt"})
        self.sim.corrupt_download = True
        hdrs, content = self.obj.get()
        self.assertNotEqual(content, CONTENT)

    def test_get_stream(self):
        self.add()
        out = b''
        with self.obj.get_stream() as strm:
            for chunk in strm:
                self.assertLessEqual(len(chunk), 16)
                out += chunk
        self.assertEqual(out, CONTENT)

    def test_get_stream_mismatch(self):
        self.add()
        self.sim.corrupt_download = True
        strm = self.obj.get_stream()
        self.assertEqual(strm.read(10), CONTENT[:10])
        with self.assertRaises(IntegrityError):
            while strm.read(10):
                pass
        strm.close()

    def test_get_stream_read_zero(self):
        self.add()
        with self.obj.get_stream() as strm:
            self.assertEqual(strm.read(0), b'')
            self.assertEqual(strm.read(), CONTENT)
            self.assertTrue(strm.verified)

    def test_delete(self):
        self.add()
        self.obj.delete()
        self.assertNotIn('hello.txt', self.objs)
        self.obj.delete()

    def test_delete_error(self):
        obj = self.mock_transport_obj(TransportError(code=500))
        with self.assertRaises(TransportError):
            obj.delete()
        obj = self.mock_transport_obj(TransportError(code=404))
        obj.delete()

    @patch('time.time', return_value=1700000000)
    def test_temp_url(self, mock_time):
        obj = self.cont.get_object("photos/cat.jpg")
        path = "/v1/10101/goob/photos/cat.jpg"
        sig = hmac.new(b"simsecret", ("GET\n1700003600\n" + path).encode(),
                       hashlib.sha1).hexdigest()
        self.assertEqual(obj.get_temp_url(3600),
                         sim.STORAGE_URL + "/goob/photos/cat.jpg?temp_url_sig=10101:SIMACCESSKEY:" +
                         sig + "&temp_url_expires=1700003600")

        sig = hmac.new(b"simsecret", ("PUT\n1700000060\n" + path).encode(),
                       hashlib.sha1).hexdigest()
        url = obj.get_temp_url(60, "put")
        self.assertIn("temp_url_sig=10101:SIMACCESSKEY:" + sig, url)
        self.assertTrue(url.endswith("&temp_url_expires=1700000060"))

    def test_temp_url_no_tenant(self):
        cont = Mock()
        cont.public_url.return_value = sim.STORAGE_URL + "/goob"
        cont.session.tenant_id = None
        obj = StoredObject(cont, "hello.txt", logging.getLogger("test"))
        with self.assertRaises(ServiceError):
            obj.get_temp_url(60)

    def test_headers(self):
        self.add(**{"x-object-meta-color": "red"})
        hdrs = self.obj.get_headers()
        self.assertEqual(hdrs['ETag'], DIGEST)
        self.assertEqual(self.obj.get_header("X-Object-Meta-Color"), "red")
        self.assertIsNone(self.obj.get_header("x-object-meta-size"))

        self.obj.set_header("Content-Disposition", "attachment")
        sent = self.sim.requests[-1][2]
        self.assertEqual(self.sim.requests[-1][0], "POST")
        for h in READONLY_HEADERS:
            self.assertNotIn(h, sent)
        self.assertEqual(sent['content-type'], "text/plain")
        self.assertEqual(sent['x-object-meta-color'], "red")
        self.assertEqual(sent['content-disposition'], "attachment")
        self.assertEqual(self.objs['hello.txt']['meta'],
                         {"content-type": "text/plain", "x-object-meta-color": "red",
                          "content-disposition": "attachment"})

        self.obj.delete_header("content-disposition")
        self.assertEqual(self.objs['hello.txt']['meta'],
                         {"content-type": "text/plain", "x-object-meta-color": "red"})
        self.assertEqual(self.objs['hello.txt']['content'], CONTENT)

    def test_meta(self):
        self.add()
        self.assertIsNone(self.obj.get_meta_value("owner"))
        self.obj.set_meta_value("Owner", "Joe Q")
        self.obj.set_meta_value("color", "red")
        self.assertEqual(self.objs['hello.txt']['meta']['x-object-meta-owner'], "Joe%20Q")
        self.assertEqual(self.obj.get_meta_value("owner"), "Joe Q")
        self.assertEqual(self.obj.get_all_meta_values(), {"owner": "Joe Q", "color": "red"})

        self.obj.delete_meta_value("OWNER")
        self.assertEqual(self.obj.get_all_meta_values(), {"color": "red"})

    def test_self_destruct(self):
        self.add()
        self.obj.self_destruct(300)
        self.assertEqual(self.objs['hello.txt']['meta']['x-delete-after'], "300")

        when = datetime(2030, 1, 1, tzinfo=timezone.utc)
        self.obj.self_destruct(at=when)
        self.assertEqual(self.objs['hello.txt']['meta']['x-delete-at'],
                         str(int(when.timestamp())))
        sent = self.sim.requests[-1][2]
        self.assertEqual(sent['x-delete-at'], str(int(when.timestamp())))
        self.assertNotIn('x-delete-after', sent)
        self.assertNotIn('x-delete-after', self.objs['hello.txt']['meta'])

        self.obj.self_destruct(at=1900000000.5)
        self.assertEqual(self.objs['hello.txt']['meta']['x-delete-at'], "1900000000")

        self.obj.self_destruct(after=60)
        sent = self.sim.requests[-1][2]
        self.assertEqual(sent['x-delete-after'], "60")
        self.assertNotIn('x-delete-at', sent)
        self.assertEqual(self.objs['hello.txt']['meta'],
                         {"content-type": "text/plain", "x-delete-after": "60"})

        with self.assertRaises(ValueError):
            self.obj.self_destruct()
        with self.assertRaises(ValueError):
            self.obj.self_destruct(300, when)

if __name__ == '__main__':
    test.main()
