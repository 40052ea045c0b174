"""Sample store metadata document, used by ``storepub sample`` and tests."""

from __future__ import annotations

from storepub.core.structured import StrDict


def sample_store_metadata() -> StrDict:
    return {
        "ios": {
            "bundleId": "com.example.app",
            "version": "1.0.0",
            "buildNumber": "1",
            "releaseType": "testflight-internal",
            "releaseNotes": "Initial release",
            "exportCompliance": {"usesEncryption": False, "isExempt": True},
            "reviewInformation": {
                "contactFirstName": "John",
                "contactLastName": "Doe",
                "contactEmail": "john@example.com",
                "contactPhone": "+1234567890",
            },
            "appInformation": {
                "subtitle": "My Awesome App",
                "promotionalText": "Check out our new app!",
                "description": "This is an amazing app that does amazing things.",
                "keywords": ["productivity", "utility", "awesome"],
                "privacyPolicyUrl": "https://example.com/privacy",
                "supportUrl": "https://example.com/support",
                "marketingUrl": "https://example.com",
            },
            "screenshots": {
                "iphone67": [
                    "screenshots/iphone67-1.png",
                    "screenshots/iphone67-2.png",
                    "screenshots/iphone67-3.png",
                ],
                "ipad129": [
                    "screenshots/ipad129-1.png",
                    "screenshots/ipad129-2.png",
                    "screenshots/ipad129-3.png",
                ],
            },
            "appIcon": "icon.png",
            "ageRating": "4+",
            "signInRequired": False,
        },
        "android": {
            "packageName": "com.example.app",
            "versionName": "1.0.0",
            "versionCode": 1,
            "track": "internal",
            "changelogs": {"en-US": "Initial release"},
            "listing": {
                "title": "My Awesome App",
                "shortDescription": "An amazing app for you".ljust(80, "."),
                "fullDescription": "This is an amazing app that does amazing things.",
                "privacyPolicyUrl": "https://example.com/privacy",
            },
            "graphics": {"icon": "icon.png", "featureGraphic": "feature.png"},
            "screenshots": {"phone": ["screenshots/phone-1.png", "screenshots/phone-2.png"]},
            "contentRating": {
                "category": "GENERAL",
                "alcoholTobacco": "NONE",
                "drugs": "NONE",
                "gambling": "NONE",
            },
            "dataSafety": {"collectsData": False, "collectedData": []},
        },
    }
