import setuptools

VERSION = '0.1.0'

setup_params = dict(
    name='swcache',
    version=VERSION,
    author='Kenneth VanderLinde',
    author_email='kwvanderlinde@gmail.com',
    url='https://github.com/kwvanderlinde/swcache',
    keywords='requests cache offline precache interception',
    packages=setuptools.find_namespace_packages(include=['swcache', 'swcache.*']),
    include_package_data=True,
    description='Versioned, strategy-routed offline cache for the requests library',
    long_description=open('README.md').read(),
    long_description_content_type='text/markdown',
    install_requires=['requests~=2.31', 'urllib3~=2.0'],
    extras_require={
        'dev': [
            'mockito~=1.4',
            'pytest~=7.4',
            'pytest-cov~=4.1',
            'ddt~=1.6',
        ]
    },
    entry_points={},
    python_requires='>=3.8',
    classifiers=[
        'Development Status :: 2 - Pre-Alpha',
        'Environment :: Web Environment',
        'Intended Audience :: Developers',
        'License :: OSI Approved :: BSD License',
        'Natural Language :: English',
        'Operating System :: OS Independent',

        'Programming Language :: Python',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3 :: Only',
    ],
)


if __name__ == '__main__':
    setuptools.setup(**setup_params)
