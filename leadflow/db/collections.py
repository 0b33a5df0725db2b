LEAD = "Lead"
MESSAGE = "Message"
CAMPAIGN = "Campaign"
PRODUCT = "Product"
CONFIG = "Config"
PLATFORM_CONNECTION = "PlatformConnection"
ANALYTICS_DAILY = "AnalyticsDaily"
MESSAGE_ARCHIVE = "MessageArchive"
CAMPAIGN_ARCHIVE = "CampaignArchive"
