# -*- coding: utf-8 -*-

from setuptools import setup

# So we get all the meta-information in one place (yay!) but we call
# exec to get it (boo!). Note that we can't "from theta_wallet_connect._metadata
# import *" here because importing the package pulls in its runtime
# requirements, which pip may not have installed yet.
with open('theta_wallet_connect/_metadata.py') as f:
    exec(
        compile(f.read(), '_metadata.py', 'exec'),
        globals(),
        locals(),
    )

description = '''
    Async RPC bridge to a Theta Wallet over a message channel
'''

setup(
    name='theta-wallet-connect',
    version=__version__,
    description=description,
    long_description=open('README.md', 'r').read(),
    long_description_content_type='text/markdown',
    keywords=['python', 'theta', 'wallet', 'json-rpc'],
    install_requires=open('requirements.txt').readlines(),
    # "pip install -e .[dev]" will install development requirements
    extras_require=dict(
        dev=open('dev-requirements.txt').readlines(),
    ),
    classifiers=[
        'Intended Audience :: Developers',
        'License :: OSI Approved :: GNU Affero General Public License v3',
        'Framework :: AsyncIO',
        'Programming Language :: Python :: 3',
    ],
    author=__author__,
    author_email=__contact__,
    url=__url__,
    license=__license__,
    python_requires='>=3.8',
    packages=["theta_wallet_connect"],
)
