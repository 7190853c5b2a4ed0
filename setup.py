import os
from setuptools import setup, find_packages
from setuptools.command.build_py import build_py as _build

CLASSIFIERS = [
    'Operating System :: POSIX',
    'Operating System :: MacOS :: MacOS X',
    'Intended Audience :: Developers',
    'Programming Language :: Python',
    'Programming Language :: Python :: 3',
    'Topic :: Internet :: WWW/HTTP',
    'Topic :: Office/Business'
]

pkgdir = os.path.dirname(os.path.abspath(__file__))

def get_version():
    out = "dev"
    versfile = os.path.join(pkgdir, 'VERSION')
    if os.path.exists(versfile):
        with open(versfile) as fd:
            parts = fd.readline().split()
        if len(parts) > 0:
            out = parts[-1]
    return out

def write_version_mod(version):
    versmodf = os.path.join(pkgdir, 'python', 'ncdocs', "version.py")
    with open(versmodf, 'w') as fd:
        fd.write('"""')
        fd.write("""
An identification of the package version.  Note that this module file gets
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

setup(name='ncdocs',
      version=get_version(),
      description="ncdocs: filing, retrieving, and sharing documents on a Nextcloud file server",
      url='https://github.com/usnistgov/oar-pdr-py',
      scripts=[ 'scripts/ncdocs' ],
      package_dir={'': 'python'},
      packages=find_packages('python', include=['ncdocs', 'ncdocs.*']),
      install_requires=[
          'requests',
          'lxml',
          'Flask',
          'Flask-RESTful',
          'PyYAML'
      ],
      extras_require={
          'test': [ 'pytest' ]
      },
      cmdclass={'build_py': build},
      classifiers=CLASSIFIERS,
      python_requires='>=3.8',
      zip_safe=False
)
