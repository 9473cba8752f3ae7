"""
A model of a container's access control lists (ACLs).

A container's permissions are expressed by the service through two headers, ``X-Container-Read``
and ``X-Container-Write``, each holding a comma-separated list of entries.  An entry of the form
``<rights>:<user>`` grants access to a user; the user ``*`` represents the public (serialized as
``.r:*``).  The read header may also include the bare token ``.rlistings``, which allows anyone to
list the container's contents.
"""
from typing import List

PUBLIC = "*"
LISTINGS = ".rlistings"

class Permissions:
    """
    the read and write access lists for a container.  Instances are built by parsing the
    container's ACL headers (or empty), updated via the ``grant_*`` and ``revoke_*`` methods, and
    turned back into header values via :py:meth:`read_header` and :py:meth:`write_header`.
    All update methods return this instance so that calls may be chained:

    .. code-block:: python

       perms = Permissions().grant_public_read().grant_world_listing()
    """

    def __init__(self, read_header: str=None, write_header: str=None):
        """
        create the permissions from the current values of a container's ACL headers
        :param str read_header:   the value of the ``X-Container-Read`` header
        :param str write_header:  the value of the ``X-Container-Write`` header
        """
        self.read, self._read_other, self.world_listable = self._parse(read_header)
        self.write, self._write_other, listable = self._parse(write_header)
        if listable:
            self._write_other.append(LISTINGS)

    @classmethod
    def parse(cls, read_header: str=None, write_header: str=None):
        """
        parse a container's ACL header values into a Permissions instance
        """
        return cls(read_header, write_header)

    @staticmethod
    def _parse(header: str):
        users = []
        other = []
        listable = False
        for entry in (header or '').split(','):
            entry = entry.strip()
            if not entry:
                continue
            parts = entry.split(':')
            if len(parts) == 2:
                user = parts[1].strip()
                if user not in users:
                    users.append(user)
            elif entry == LISTINGS:
                listable = True
            elif entry not in other:
                other.append(entry)
        return users, other, listable

    @staticmethod
    def _serialize(users: List[str]) -> List[str]:
        return [(".r:*" if u == PUBLIC else "*:" + u) for u in users]

    def read_header(self) -> str:
        """
        return the value to assign to the container's ``X-Container-Read`` header
        """
        out = self._serialize(self.read) + self._read_other
        if self.world_listable:
            out.append(LISTINGS)
        return ",".join(out)

    def write_header(self) -> str:
        """
        return the value to assign to the container's ``X-Container-Write`` header
        """
        return ",".join(self._serialize(self.write) + self._write_other)

    @staticmethod
    def _check_user(user: str) -> str:
        # the header encoding cannot carry these characters within a user name
        user = (user or '').strip()
        if not user or ',' in user or ':' in user:
            raise ValueError("Not a valid ACL user name: " + repr(user))
        return user

    def grant_read(self, user: str):
        """
        give the named user read access
        :raises ValueError:  if the name is empty or contains a comma or colon
        """
        user = self._check_user(user)
        if user not in self.read:
            self.read.append(user)
        return self

    def revoke_read(self, user: str):
        user = (user or '').strip()
        if user in self.read:
            self.read.remove(user)
        return self

    def grant_write(self, user: str):
        """
        give the named user write access
        :raises ValueError:  if the name is empty or contains a comma or colon
        """
        user = self._check_user(user)
        if user not in self.write:
            self.write.append(user)
        return self

    def revoke_write(self, user: str):
        user = (user or '').strip()
        if user in self.write:
            self.write.remove(user)
        return self

    def grant_public_read(self):
        return self.grant_read(PUBLIC)

    def revoke_public_read(self):
        return self.revoke_read(PUBLIC)

    def grant_public_write(self):
        return self.grant_write(PUBLIC)

    def revoke_public_write(self):
        return self.revoke_write(PUBLIC)

    def grant_world_listing(self):
        self.world_listable = True
        return self

    def revoke_world_listing(self):
        self.world_listable = False
        return self

    def clear_read(self):
        """
        remove all read access, including any unrecognized entries.  World listing is unaffected.
        """
        self.read = []
        self._read_other = []
        return self

    def clear_write(self):
        """
        remove all write access, including any unrecognized entries
        """
        self.write = []
        self._write_other = []
        return self

    def __eq__(self, other):
        if not isinstance(other, Permissions):
            return NotImplemented
        return set(self.read) == set(other.read) and set(self.write) == set(other.write) and \
               set(self._read_other) == set(other._read_other) and \
               set(self._write_other) == set(other._write_other) and \
               self.world_listable == other.world_listable

    def __repr__(self):
        return "Permissions(%r, %r)" % (self.read_header(), self.write_header())
