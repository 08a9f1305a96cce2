# storefront-insights: Core Services
# Pure request classification, attribution and TTL-record helpers shared by components
