"""
Create an active venue (and optionally one ad) for local testing of the splash flow

Usage:
    python scripts/seed_venue.py "Cafe Blue" --review-url https://g.page/r/xyz --ad-title "Happy hour" --ad-url https://cafeblue.in/menu
"""
import argparse
import sys
import os

# Add parent directory to path to import backend modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.database import SessionLocal, init_db
from models.venue import Venue, VenueAd


def main():
    parser = argparse.ArgumentParser(description="Seed a venue for the splash portal")
    parser.add_argument("name")
    parser.add_argument("--review-url", default=None)
    parser.add_argument("--status", default="active")
    parser.add_argument("--ad-title", default=None)
    parser.add_argument("--ad-url", default=None)
    args = parser.parse_args()

    init_db()
    db = SessionLocal()
    try:
        venue = Venue(name=args.name, status=args.status, review_url=args.review_url)
        db.add(venue)
        db.flush()
        if args.ad_title or args.ad_url:
            db.add(VenueAd(venue_id=venue.id, title=args.ad_title, cta_url=args.ad_url))
        db.commit()
        print(f"✓ Venue {venue.id} ({venue.name}, {venue.status})")
        for ad in venue.ads:
            print(f"  ad {ad.id} -> {ad.cta_url or '-'}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
