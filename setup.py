import os
from setuptools import setup, find_namespace_packages
from setuptools.command.build_py import build_py as _build

CLASSIFIERS = [
    'Operating System :: POSIX',
    'Operating System :: MacOS :: MacOS X',
    'Intended Audience :: Developers',
    'Programming Language :: Python',
    'Programming Language :: Python :: 3',
    'Topic :: Internet :: WWW/HTTP',
    'Topic :: Software Development :: Libraries'
]

pkgdir = os.path.dirname(os.path.abspath(__file__))
pydir = os.path.join(pkgdir, 'python')

def get_version():
    out = "dev"
    versfile = os.path.join(pkgdir, 'VERSION')
    if os.path.exists(versfile):
        with open(versfile) as fd:
            parts = fd.readline().split()
        if len(parts) > 0:
            out = parts[-1]
    else:
        out = "(unknown)"
    return out

def write_version_mod(version):
    hewdir = os.path.join(pydir, 'hew')
    for pkg in [f for f in os.listdir(hewdir) \
                  if not f.startswith('_') and not f.startswith('.')
                     and os.path.isdir(os.path.join(hewdir, f))]:
        print("setting version for hew."+pkg)
        versmodf = os.path.join(hewdir, pkg, "version.py")
        with open(versmodf, 'w') as fd:
            fd.write('"""')
            fd.write("""
An identification of the subsystem version.  Note that this module file gets
(over-) written by the build process.
""")
            fd.write('"""\n\n')
            fd.write('__version__ = "')
            fd.write(version)
            fd.write('"\n')

class build(_build):

    def run(self):
        write_version_mod(get_version())
        _build.run(self)

setup(name='hew',
      version=get_version(),
      description="hew: python client support for the HP Cloud identity and object storage services",
      scripts=[ ],
      package_dir={'': 'python'},
      packages=find_namespace_packages(where='python', include=['hew.*']),
      install_requires=[ 'requests', 'PyYAML' ],
      extras_require={ 'test': [ 'pytest' ] },
      cmdclass={'build_py': build},
      classifiers=CLASSIFIERS,
      zip_safe=False
)
