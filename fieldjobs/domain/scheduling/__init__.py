"""
Scheduling Domain

Appointment negotiation for jobs: free-form proposals, offered slots,
estimates, direct and multi-day scheduling, and cancellation.

Structure:
```
fieldjobs/domain/scheduling/
├── schemas.py      # Request/response models
├── repository.py   # Job queries and version-checked updates
├── timezones.py    # IANA zone arithmetic and formatting
├── multiday.py     # Working-hours segmentation for long jobs
├── service.py      # SchedulingService
└── router.py       # /jobs, /providers and /scheduling endpoints
```
"""
