import re


class DeviceDetector:
    """Coarse device/OS classification for captive-portal visits"""

    # (pattern, device_type, os_family) - first match wins
    RULES = [
        (re.compile(r'iphone|ipod', re.IGNORECASE), 'mobile', 'ios'),
        (re.compile(r'ipad', re.IGNORECASE), 'tablet', 'ios'),
        (re.compile(r'android.*mobile|mobile.*android', re.IGNORECASE), 'mobile', 'android'),
        (re.compile(r'android', re.IGNORECASE), 'tablet', 'android'),
        (re.compile(r'windows', re.IGNORECASE), 'desktop', 'windows'),
        (re.compile(r'mac os x', re.IGNORECASE), 'desktop', 'macos'),
        (re.compile(r'linux', re.IGNORECASE), 'desktop', 'linux'),
    ]

    UNKNOWN = {'device_type': 'unknown', 'os_family': 'unknown'}

    @classmethod
    def classify(cls, user_agent):
        """Return {'device_type', 'os_family'} for a User-Agent string"""
        if not user_agent:
            return dict(cls.UNKNOWN)
        for pattern, device_type, os_family in cls.RULES:
            if pattern.search(user_agent):
                return {'device_type': device_type, 'os_family': os_family}
        return dict(cls.UNKNOWN)


def classify_device(user_agent):
    return DeviceDetector.classify(user_agent)
