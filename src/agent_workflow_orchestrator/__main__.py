from agent_workflow_orchestrator.cli import main

raise SystemExit(main())
