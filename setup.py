import os.path

from setuptools import find_packages, setup

with open(os.path.join(os.path.dirname(__file__), 'README.md')) as f:
    LONG_DESCRIPTION = f.read()
    DESCRIPTION = LONG_DESCRIPTION.splitlines()[0].lstrip('#').strip()

PROJECT_URLS = {
    'Source Code': 'https://github.com/kasterism/astertower',
}

setup(
    name='astertower',
    version='0.1.0',

    url=PROJECT_URLS['Source Code'],
    project_urls=PROJECT_URLS,
    description=DESCRIPTION,
    long_description=LONG_DESCRIPTION,
    long_description_content_type='text/markdown',
    keywords=['kubernetes', 'controller', 'reconciliation', 'finalizers', 'python', 'k8s'],
    license='MIT',
    classifiers = [
        'Intended Audience :: Developers',
        'License :: OSI Approved :: MIT License',
        'Operating System :: OS Independent',
        'Programming Language :: Python',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3.10',
        'Programming Language :: Python :: 3.11',
        'Programming Language :: Python :: 3.12',
        'Programming Language :: Python :: 3.13',
        'Programming Language :: Python :: 3 :: Only',
        'Programming Language :: Python :: Implementation :: CPython',
        'Topic :: Software Development :: Libraries',
    ],

    zip_safe=True,
    packages=find_packages(include=['astertower', 'astertower.*']),
    include_package_data=True,
    entry_points={
        'console_scripts': [
            'astertower = astertower.cli:main',
        ],
    },

    python_requires='>=3.10',
    install_requires=[
        'typing_extensions',
        'python-json-logger>=3.1.0',
        'iso8601',
        'click',
        'aiohttp>=3.9.0',
        'pyyaml',
    ],
    extras_require={
        'test': [
            'pytest',
            'pytest-asyncio>=0.24,<1.0',  # aresponses needs the event_loop fixture
            'pytest-mock',
            'async-timeout',
            'aresponses',
        ],
    },
    package_data={"astertower": ["py.typed"]},
)
